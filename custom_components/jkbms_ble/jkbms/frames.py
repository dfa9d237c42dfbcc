"""Reassembly of BLE notification fragments into complete JK BMS frames."""

from __future__ import annotations

import logging
from enum import Enum

from .protocol import ACK_SENTINEL, FRAME_LENGTH, FRAME_START_SENTINEL

LOGGER = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


def is_ack(fragment: bytes) -> bool:
    """Return True for a command echo (fragments shorter than the sentinel never match)."""
    return len(fragment) >= len(ACK_SENTINEL) and fragment[: len(ACK_SENTINEL)] == ACK_SENTINEL


def is_frame_start(fragment: bytes) -> bool:
    return (
        len(fragment) >= len(FRAME_START_SENTINEL)
        and fragment[: len(FRAME_START_SENTINEL)] == FRAME_START_SENTINEL
    )


class FrameSynchronizer:
    """Stateful reassembler for one connection's notification stream.

    Fragments are fed in arrival order. A fragment starting with the
    frame-start sentinel (re)starts accumulation, command echoes are ignored,
    and anything arriving while idle is noise. Once the buffer holds exactly
    ``frame_length`` bytes the frame is returned and the synchronizer goes
    back to idle. A fragment that would grow the buffer past
    ``frame_length`` rejects the whole frame.

    Instances are not thread-safe; one consumer owns one synchronizer.
    """

    def __init__(self, frame_length: int = FRAME_LENGTH):
        self.frame_length = frame_length
        self.frames: int = 0
        self.acks: int = 0
        self.noise: int = 0
        self.restarts: int = 0
        self.overflows: int = 0
        self._state = SyncState.IDLE
        self._buf = bytearray()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def buffered(self) -> int:
        return len(self._buf)

    def feed(self, fragment: bytes) -> bytes | None:
        """Feed one fragment, return a completed frame if this one finished it."""
        if is_ack(fragment):
            self.acks += 1
            return None

        if is_frame_start(fragment):
            if self._state is SyncState.ACCUMULATING:
                self.restarts += 1
                LOGGER.debug(
                    "frame start while accumulating, dropping %d buffered bytes",
                    len(self._buf),
                )
            self._buf = bytearray(fragment)
            self._state = SyncState.ACCUMULATING
        elif self._state is SyncState.IDLE:
            self.noise += 1
            return None
        else:
            self._buf.extend(fragment)

        return self._check_complete()

    def reset(self) -> None:
        """Drop any partial frame, e.g. when the transport goes away."""
        if self._buf:
            LOGGER.debug("discarding %d bytes of partial frame", len(self._buf))
        self._buf.clear()
        self._state = SyncState.IDLE

    def _check_complete(self) -> bytes | None:
        length = len(self._buf)
        if length > self.frame_length:
            self.overflows += 1
            LOGGER.warning(
                "frame grew to %d bytes, expected %d; discarding",
                length, self.frame_length)
            self.reset()
            return None
        if length < self.frame_length:
            return None

        frame = bytes(self._buf)
        self._buf.clear()
        self._state = SyncState.IDLE
        self.frames += 1
        return frame


__all__ = ["SyncState", "FrameSynchronizer", "is_ack", "is_frame_start"]
