"""Public package surface for JK BMS telemetry utilities.

The `jkbms` package reassembles BLE notification fragments into frames
(:mod:`jkbms.frames`), decodes the cell info layout (:mod:`jkbms.protocol`,
:mod:`jkbms.alarms`) and talks to the device over BLE (:mod:`jkbms.ble`).
"""

from .alarms import ALARM_LABELS, UNKNOWN_ALARM_LABEL, AlarmCondition, resolve_alarm
from .ble import (
    NOTIFY_UUID,
    SERVICE_UUID,
    WRITE_UUID,
    JkBmsBleClient,
    fetch_record_once,
    next_latest,
    stream_records,
)
from .frames import FrameSynchronizer, SyncState
from .protocol import (  # noqa: F401
    ACK_SENTINEL,
    CELL_COUNT,
    CELL_INFO_FIELDS,
    FRAME_LENGTH,
    FRAME_START_SENTINEL,
    GET_CELL_INFO,
    GET_DEVICE_INFO,
    Cell,
    FieldSpec,
    FrameLengthError,
    JkBmsError,
    TelemetryRecord,
    decode_cell_info,
)

__all__ = [
    "ACK_SENTINEL",
    "ALARM_LABELS",
    "CELL_COUNT",
    "CELL_INFO_FIELDS",
    "FRAME_LENGTH",
    "FRAME_START_SENTINEL",
    "GET_CELL_INFO",
    "GET_DEVICE_INFO",
    "NOTIFY_UUID",
    "SERVICE_UUID",
    "UNKNOWN_ALARM_LABEL",
    "WRITE_UUID",
    "AlarmCondition",
    "Cell",
    "FieldSpec",
    "FrameLengthError",
    "FrameSynchronizer",
    "JkBmsBleClient",
    "JkBmsError",
    "SyncState",
    "TelemetryRecord",
    "decode_cell_info",
    "fetch_record_once",
    "next_latest",
    "resolve_alarm",
    "stream_records",
]
