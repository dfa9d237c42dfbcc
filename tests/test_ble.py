"""Tests for the JK BMS BLE client with bleak mocked out."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from jkbms import ble as jkbms_ble
from jkbms.ble import NOTIFY_UUID, SERVICE_UUID, WRITE_UUID, JkBmsBleClient, next_latest
from jkbms.frames import SyncState
from jkbms.protocol import GET_CELL_INFO, GET_DEVICE_INFO


def make_bleak_client(has_service=True):
    client = MagicMock()
    client.write_gatt_char = AsyncMock()
    client.start_notify = AsyncMock()
    client.stop_notify = AsyncMock()
    client.disconnect = AsyncMock()
    service = MagicMock()
    service.get_characteristic.return_value = object()
    client.services.get_service.return_value = service if has_service else None
    return client


@pytest.fixture
def bleak_client(monkeypatch):
    client = make_bleak_client()
    monkeypatch.setattr(jkbms_ble, "establish_connection", AsyncMock(return_value=client))
    return client


def notification_handler(bleak_client):
    args, _kwargs = bleak_client.start_notify.call_args
    assert args[0] == NOTIFY_UUID
    return args[1]


@pytest.mark.asyncio
async def test_connect_checks_service(bleak_client):
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")
    await bms.connect()

    assert bms.connected
    bleak_client.services.get_service.assert_called_with(SERVICE_UUID)


@pytest.mark.asyncio
async def test_connect_without_service_fails(monkeypatch):
    client = make_bleak_client(has_service=False)
    monkeypatch.setattr(jkbms_ble, "establish_connection", AsyncMock(return_value=client))

    with pytest.raises(RuntimeError):
        await JkBmsBleClient("AA:BB:CC:DD:EE:FF").connect()


@pytest.mark.asyncio
async def test_failed_service_check_closes_connection(monkeypatch):
    client = make_bleak_client(has_service=False)
    monkeypatch.setattr(jkbms_ble, "establish_connection", AsyncMock(return_value=client))
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")

    with pytest.raises(RuntimeError):
        async with bms:
            pass

    client.disconnect.assert_awaited_once()
    assert not bms.connected


@pytest.mark.asyncio
async def test_commands_require_connection():
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")
    with pytest.raises(RuntimeError):
        await bms.request_cell_info()
    with pytest.raises(RuntimeError):
        await bms.subscribe_notifications(lambda record, frame: None)


@pytest.mark.asyncio
async def test_request_telemetry_sends_both_commands(bleak_client):
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF", command_delay=0)
    await bms.connect()

    await bms.request_telemetry()

    writes = [call.args for call in bleak_client.write_gatt_char.call_args_list]
    assert writes == [(WRITE_UUID, GET_DEVICE_INFO), (WRITE_UUID, GET_CELL_INFO)]


@pytest.mark.asyncio
async def test_notifications_yield_records(bleak_client, cell_info_frame, fragments):
    frame = cell_info_frame(cells_mv=[0, 3300, 3295], alarm=4096)
    received = []
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF", command_delay=0)
    await bms.connect()
    await bms.subscribe_notifications(lambda record, raw: received.append((record, raw)))
    handler = notification_handler(bleak_client)

    handler(None, bytearray(GET_CELL_INFO))
    for piece in fragments(frame):
        handler(None, bytearray(piece))

    assert len(received) == 1
    record, raw = received[0]
    assert raw == frame
    assert record.min_cell_voltage == pytest.approx(3.295)
    assert record.alarm.label == "Cell Over Voltage"


@pytest.mark.asyncio
async def test_async_callback_is_scheduled(bleak_client, cell_info_frame):
    done = asyncio.Event()

    async def on_record(record, _frame):
        done.set()

    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")
    await bms.connect()
    await bms.subscribe_notifications(on_record)
    notification_handler(bleak_client)(None, bytearray(cell_info_frame()))

    await asyncio.wait_for(done.wait(), timeout=1)


@pytest.mark.asyncio
async def test_disconnect_drops_partial_frame(bleak_client, cell_info_frame):
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")
    await bms.connect()
    await bms.subscribe_notifications(lambda record, frame: None)
    notification_handler(bleak_client)(None, bytearray(cell_info_frame()[:100]))
    assert bms.synchronizer.state is SyncState.ACCUMULATING

    await bms.disconnect()

    assert bms.synchronizer.state is SyncState.IDLE
    assert not bms.connected
    bleak_client.stop_notify.assert_awaited_once_with(NOTIFY_UUID)
    bleak_client.disconnect.assert_awaited_once()


def test_feed_fragment_returns_record_and_frame(cell_info_frame):
    frame = cell_info_frame()
    bms = JkBmsBleClient("AA:BB:CC:DD:EE:FF")

    assert bms.feed_fragment(frame[:200]) is None
    record, raw = bms.feed_fragment(frame[200:])

    assert raw == frame
    assert len(record.cells) == 24


@pytest.mark.asyncio
async def test_next_latest_skips_stale_items():
    queue = asyncio.Queue()
    for item in ("first", "second", "third"):
        queue.put_nowait(item)

    assert await next_latest(queue) == "third"
    assert queue.empty()


@pytest.mark.asyncio
async def test_next_latest_waits_for_item():
    queue = asyncio.Queue()
    asyncio.get_running_loop().call_later(0.01, queue.put_nowait, "record")

    assert await next_latest(queue, timeout=1) == "record"


@pytest.mark.asyncio
async def test_next_latest_times_out():
    with pytest.raises(asyncio.TimeoutError):
        await next_latest(asyncio.Queue(), timeout=0.01)
