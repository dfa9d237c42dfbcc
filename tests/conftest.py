"""Shared fixtures for the jkbms tests."""

import os
import struct
import sys
from typing import Optional, Sequence

import pytest

sys.path.insert(
    0, os.path.join(os.path.dirname(__file__), "..", "custom_components", "jkbms_ble")
)

from jkbms.protocol import (  # noqa: E402
    ALARM_CODE,
    AVERAGE_CELL_VOLTAGE,
    BALANCING_CURRENT,
    CELL_COUNT,
    CELL_RESISTANCE_FIELD,
    CELL_VOLTAGE_FIELD,
    CURRENT,
    DELTA_CELL_VOLTAGE,
    FRAME_LENGTH,
    FRAME_START_SENTINEL,
    MOS_TEMPERATURE,
    T1,
    T2,
    TOTAL_VOLTAGE,
)


def build_cell_info_frame(
    cells_mv: Optional[Sequence[int]] = None,
    resistances_mohm: Optional[Sequence[int]] = None,
    average_mv: int = 3300,
    delta_mv: int = 5,
    total_mv: int = 52800,
    current_ma: int = 1500,
    t1_raw: int = 251,
    t2_raw: int = 248,
    mos_raw: int = 305,
    alarm: int = 0,
    balancing_ma: int = 0,
) -> bytes:
    """Build a 300-byte cell info frame with raw field values."""
    if cells_mv is None:
        cells_mv = [3300] * 16
    if resistances_mohm is None:
        resistances_mohm = [60] * len(cells_mv)
    cells_mv = (list(cells_mv) + [0] * CELL_COUNT)[:CELL_COUNT]
    resistances_mohm = (list(resistances_mohm) + [0] * CELL_COUNT)[:CELL_COUNT]

    frame = bytearray(FRAME_LENGTH)
    frame[: len(FRAME_START_SENTINEL)] = FRAME_START_SENTINEL
    frame[4] = 0x02
    for index in range(CELL_COUNT):
        struct.pack_into(
            CELL_VOLTAGE_FIELD.fmt, frame,
            CELL_VOLTAGE_FIELD.offset + index * CELL_VOLTAGE_FIELD.stride,
            cells_mv[index],
        )
        struct.pack_into(
            CELL_RESISTANCE_FIELD.fmt, frame,
            CELL_RESISTANCE_FIELD.offset + index * CELL_RESISTANCE_FIELD.stride,
            resistances_mohm[index],
        )
    for spec, value in (
        (AVERAGE_CELL_VOLTAGE, average_mv),
        (DELTA_CELL_VOLTAGE, delta_mv),
        (TOTAL_VOLTAGE, total_mv),
        (CURRENT, current_ma),
        (T1, t1_raw),
        (T2, t2_raw),
        (MOS_TEMPERATURE, mos_raw),
        (ALARM_CODE, alarm),
        (BALANCING_CURRENT, balancing_ma),
    ):
        # raw values are given as unsigned words
        struct.pack_into(spec.fmt.upper(), frame, spec.offset, value)
    return bytes(frame)


def split_fragments(frame: bytes, size: int = 20) -> list:
    return [frame[i:i + size] for i in range(0, len(frame), size)]


@pytest.fixture
def cell_info_frame():
    return build_cell_info_frame


@pytest.fixture
def fragments():
    return split_fragments
