"""JK BMS wire format: outbound commands and the cell info frame layout."""

import json
import struct
from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

from .alarms import AlarmCondition, resolve_alarm

# Command echoes start with the acknowledgment sentinel, telemetry with the frame-start one
ACK_SENTINEL = bytes([0xAA, 0x55])
FRAME_START_SENTINEL = bytes([0x55, 0xAA, 0xEB, 0x90])

FRAME_LENGTH = 300
HEADER_SIZE = 16
CELL_COUNT = 24

GET_DEVICE_INFO = bytes(
    [0xAA, 0x55, 0x90, 0xEB, 0x97, 0x00, 0x00, 0x00, 0x00, 0x00,
     0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x11]
)
GET_CELL_INFO = bytes(
    [0xAA, 0x55, 0x90, 0xEB, 0x96, 0x00, 0x00, 0x00, 0x00, 0x00,
     0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x10]
)


class JkBmsError(Exception):
    """Base class for JK BMS protocol errors."""


class FrameLengthError(JkBmsError, ValueError):
    """A frame was not exactly FRAME_LENGTH bytes long."""

    def __init__(self, length: int, expected: int = FRAME_LENGTH) -> None:
        super().__init__(f"Frame is {length} bytes, expected {expected}")
        self.length = length
        self.expected = expected


@dataclass(frozen=True)
class FieldSpec:
    name: str
    offset: int
    fmt: str
    scale: float = 1
    unit: str = ""
    stride: int = 0

    @property
    def size(self) -> int:
        return struct.calcsize(self.fmt)

    def end(self, index: int = 0) -> int:
        return self.offset + index * self.stride + self.size


# Cell info layout. The resistance block and everything after the cell
# averages is addressed from 2 * HEADER_SIZE.
CELL_VOLTAGE_FIELD = FieldSpec(
    "cell_voltage", HEADER_SIZE + 6, "<H", scale=0.001, unit="V", stride=2
)
CELL_RESISTANCE_FIELD = FieldSpec(
    "cell_resistance", 2 * HEADER_SIZE + 64, "<H", scale=0.001, unit="Ohm", stride=2
)

AVERAGE_CELL_VOLTAGE = FieldSpec("average_cell_voltage", HEADER_SIZE + 58, "<H", 0.001, "V")
DELTA_CELL_VOLTAGE = FieldSpec("delta_cell_voltage", HEADER_SIZE + 60, "<H", 0.001, "V")
TOTAL_VOLTAGE = FieldSpec("total_voltage", 2 * HEADER_SIZE + 118, "<I", 0.001, "V")
CURRENT = FieldSpec("current", 2 * HEADER_SIZE + 126, "<I", 0.001, "A")
# Temperatures are read as signed so sub-zero readings stay below zero
T1 = FieldSpec("t1", 2 * HEADER_SIZE + 130, "<h", 0.1, "°C")
T2 = FieldSpec("t2", 2 * HEADER_SIZE + 132, "<h", 0.1, "°C")
MOS_TEMPERATURE = FieldSpec("mos_temperature", 2 * HEADER_SIZE + 134, "<h", 0.1, "°C")
ALARM_CODE = FieldSpec("alarm", 2 * HEADER_SIZE + 136, "<H")
BALANCING_CURRENT = FieldSpec("balancing_current", 2 * HEADER_SIZE + 138, "<h", 0.001, "A")

CELL_INFO_FIELDS: Tuple[FieldSpec, ...] = (
    AVERAGE_CELL_VOLTAGE,
    DELTA_CELL_VOLTAGE,
    TOTAL_VOLTAGE,
    CURRENT,
    T1,
    T2,
    MOS_TEMPERATURE,
    ALARM_CODE,
    BALANCING_CURRENT,
)


@dataclass(frozen=True)
class Cell:
    voltage: float
    internal_resistance: float


@dataclass(frozen=True)
class TelemetryRecord:
    cells: Tuple[Cell, ...]
    max_cell_voltage: float
    min_cell_voltage: float
    average_cell_voltage: float
    delta_cell_voltage: float
    total_voltage: float
    current: float
    balancing_current: float
    power: float
    t1: float
    t2: float
    mos_temperature: float
    alarm: AlarmCondition

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cells"] = [asdict(cell) for cell in self.cells]
        return data

    def to_json(self) -> str:
        """Serialize the record the way it is shipped to a monitoring item."""
        return json.dumps(self.as_dict())


def read_raw(frame: bytes, spec: FieldSpec, index: int = 0) -> int:
    """Unpack the raw integer for a field, failing cleanly past the buffer end."""
    offset = spec.offset + index * spec.stride
    if offset < 0 or spec.end(index) > len(frame):
        raise FrameLengthError(len(frame), spec.end(index))
    return struct.unpack_from(spec.fmt, frame, offset)[0]


def read_scaled(frame: bytes, spec: FieldSpec, index: int = 0) -> float:
    return read_raw(frame, spec, index) * spec.scale


def decode_cell_info(frame: bytes) -> TelemetryRecord:
    """Decode one complete cell info frame into a TelemetryRecord.

    Raises FrameLengthError unless the frame is exactly FRAME_LENGTH bytes.
    """
    if len(frame) != FRAME_LENGTH:
        raise FrameLengthError(len(frame))
    frame = bytes(frame)

    cells = tuple(
        Cell(
            voltage=read_scaled(frame, CELL_VOLTAGE_FIELD, index),
            internal_resistance=read_scaled(frame, CELL_RESISTANCE_FIELD, index),
        )
        for index in range(CELL_COUNT)
    )
    voltages = [cell.voltage for cell in cells]
    # A zeroed cell is unreported and must not become the minimum
    reported = [voltage for voltage in voltages if voltage > 0]

    total_voltage = read_scaled(frame, TOTAL_VOLTAGE)
    current = read_scaled(frame, CURRENT)

    return TelemetryRecord(
        cells=cells,
        max_cell_voltage=max(voltages),
        min_cell_voltage=min(reported) if reported else 0.0,
        average_cell_voltage=read_scaled(frame, AVERAGE_CELL_VOLTAGE),
        delta_cell_voltage=read_scaled(frame, DELTA_CELL_VOLTAGE),
        total_voltage=total_voltage,
        current=current,
        balancing_current=read_scaled(frame, BALANCING_CURRENT),
        power=total_voltage * current,
        t1=read_scaled(frame, T1),
        t2=read_scaled(frame, T2),
        mos_temperature=read_scaled(frame, MOS_TEMPERATURE),
        alarm=resolve_alarm(read_raw(frame, ALARM_CODE)),
    )


__all__ = [
    "ACK_SENTINEL",
    "FRAME_START_SENTINEL",
    "FRAME_LENGTH",
    "HEADER_SIZE",
    "CELL_COUNT",
    "GET_DEVICE_INFO",
    "GET_CELL_INFO",
    "JkBmsError",
    "FrameLengthError",
    "FieldSpec",
    "CELL_VOLTAGE_FIELD",
    "CELL_RESISTANCE_FIELD",
    "CELL_INFO_FIELDS",
    "Cell",
    "TelemetryRecord",
    "read_raw",
    "read_scaled",
    "decode_cell_info",
]
