"""Tests for the notification fragment synchronizer."""

import logging

from jkbms.frames import FrameSynchronizer, SyncState, is_ack, is_frame_start
from jkbms.protocol import FRAME_LENGTH, FRAME_START_SENTINEL, GET_CELL_INFO

ACK = bytes([0xAA, 0x55, 0x90, 0xEB, 0x96]) + bytes(15)


def feed_all(sync, pieces):
    return [frame for frame in (sync.feed(piece) for piece in pieces) if frame is not None]


class TestSentinels:

    def test_short_fragments_never_match(self):
        for fragment in (b"", b"\xaa", b"\x55", b"\x55\xaa", b"\x55\xaa\xeb"):
            assert not is_frame_start(fragment)
        assert not is_ack(b"")
        assert not is_ack(b"\xaa")

    def test_command_echo_is_ack(self):
        assert is_ack(GET_CELL_INFO)
        assert not is_frame_start(GET_CELL_INFO)

    def test_frame_start(self):
        assert is_frame_start(FRAME_START_SENTINEL + b"\x02")
        assert not is_ack(FRAME_START_SENTINEL)


class TestFrameSynchronizer:

    def test_starts_idle(self):
        sync = FrameSynchronizer()
        assert sync.state is SyncState.IDLE
        assert sync.buffered == 0

    def test_reassembles_exact_frame(self, cell_info_frame, fragments):
        frame = cell_info_frame()
        sync = FrameSynchronizer()

        emitted = feed_all(sync, fragments(frame))

        assert emitted == [frame]
        assert sync.state is SyncState.IDLE
        assert sync.buffered == 0
        assert sync.frames == 1

    def test_uneven_fragments(self, cell_info_frame):
        frame = cell_info_frame()
        pieces = [frame[:7], frame[7:8], b"", frame[8:150], frame[150:299], frame[299:]]
        sync = FrameSynchronizer()

        assert feed_all(sync, pieces) == [frame]

    def test_single_fragment_frame(self, cell_info_frame):
        frame = cell_info_frame()
        sync = FrameSynchronizer()
        assert sync.feed(frame) == frame
        assert sync.state is SyncState.IDLE

    def test_incomplete_stream_emits_nothing(self, cell_info_frame, fragments):
        frame = cell_info_frame()
        sync = FrameSynchronizer()

        emitted = feed_all(sync, fragments(frame)[:-1])

        assert emitted == []
        assert sync.state is SyncState.ACCUMULATING
        assert sync.buffered == FRAME_LENGTH - 20

    def test_reset_abandons_partial_frame(self, cell_info_frame, fragments):
        sync = FrameSynchronizer()
        feed_all(sync, fragments(cell_info_frame())[:5])

        sync.reset()

        assert sync.state is SyncState.IDLE
        assert sync.buffered == 0
        assert sync.frames == 0

    def test_noise_while_idle_is_discarded(self, cell_info_frame):
        sync = FrameSynchronizer()
        for noise in (b"", b"\x01", b"\x00" * 50, cell_info_frame()[4:]):
            assert sync.feed(noise) is None
        assert sync.state is SyncState.IDLE
        assert sync.noise == 4

    def test_ack_while_idle_does_not_start_frame(self):
        sync = FrameSynchronizer()
        assert sync.feed(ACK) is None
        assert sync.state is SyncState.IDLE
        assert sync.acks == 1

    def test_ack_mid_frame_is_not_appended(self, cell_info_frame, fragments):
        frame = cell_info_frame()
        pieces = fragments(frame)
        sync = FrameSynchronizer()

        feed_all(sync, pieces[:3])
        assert sync.feed(ACK) is None
        assert sync.buffered == 60
        assert sync.state is SyncState.ACCUMULATING

        assert feed_all(sync, pieces[3:]) == [frame]

    def test_ack_cannot_complete_frame(self, cell_info_frame):
        frame = cell_info_frame()
        sync = FrameSynchronizer()
        sync.feed(frame[:280])

        assert sync.feed(ACK) is None
        assert sync.buffered == 280

    def test_frame_start_mid_accumulation_restarts(self, cell_info_frame, fragments):
        stale = cell_info_frame(cells_mv=[3100] * 8)
        fresh = cell_info_frame(cells_mv=[3350] * 8)
        sync = FrameSynchronizer()

        feed_all(sync, fragments(stale)[:6])
        emitted = feed_all(sync, fragments(fresh))

        assert emitted == [fresh]
        assert sync.restarts == 1

    def test_overflow_resets_to_idle(self, cell_info_frame, caplog):
        frame = cell_info_frame()
        sync = FrameSynchronizer()
        sync.feed(frame[:290])

        with caplog.at_level(logging.WARNING):
            assert sync.feed(b"\x01" * 20) is None

        assert sync.state is SyncState.IDLE
        assert sync.buffered == 0
        assert sync.overflows == 1
        assert "discarding" in caplog.text

    def test_oversized_start_fragment_is_rejected(self, cell_info_frame):
        sync = FrameSynchronizer()
        assert sync.feed(cell_info_frame() + b"\x00") is None
        assert sync.state is SyncState.IDLE
        assert sync.overflows == 1

    def test_recovers_after_overflow(self, cell_info_frame, fragments):
        frame = cell_info_frame()
        sync = FrameSynchronizer()
        sync.feed(frame[:290])
        sync.feed(b"\x01" * 20)

        assert feed_all(sync, fragments(frame)) == [frame]

    def test_back_to_back_frames(self, cell_info_frame, fragments):
        first = cell_info_frame(alarm=0)
        second = cell_info_frame(alarm=4096)
        sync = FrameSynchronizer()

        emitted = feed_all(sync, fragments(first) + [ACK] + fragments(second))

        assert emitted == [first, second]
        assert sync.frames == 2

    def test_bytes_after_completion_are_noise(self, cell_info_frame):
        sync = FrameSynchronizer()
        sync.feed(cell_info_frame())
        assert sync.feed(b"\x00\x01\x02") is None
        assert sync.state is SyncState.IDLE
