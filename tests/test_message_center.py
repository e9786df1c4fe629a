import struct
import threading
import time

import pytest

from snapair.errors import FrameError
from snapair.message_center import MessageCenter, MessageType
from snapair.msp import (
    MAX_RC_CHANNELS,
    MSP_FLAG_DONT_REPLY,
    MSP_SET_RAW_RC,
    MspFrame,
    MspParser,
    MspVersion,
    decode_v2_header,
)


class Recorder:
    def __init__(self):
        self.sent = []

    def __call__(self, data):
        self.sent.append(bytes(data))


@pytest.fixture
def links():
    return Recorder(), Recorder(), Recorder()


@pytest.fixture
def center(links):
    ttl, udp, bt = links
    return MessageCenter(ttl, udp, bt)


def test_default_channels(center):
    assert center.channels[:4] == (1500, 1500, 885, 1500)
    assert set(center.channels[4:]) == {1200}
    assert len(center.channels) == MAX_RC_CHANNELS


def test_set_channel_and_bounds(center):
    center.set_channel(2, 1000)
    assert center.channels[2] == 1000
    with pytest.raises(IndexError):
        center.set_channel(MAX_RC_CHANNELS, 1000)


def test_set_channels_limit(center):
    center.set_channels([1000, 1001])
    assert center.channels[:2] == (1000, 1001)
    with pytest.raises(ValueError):
        center.set_channels([1500] * MAX_RC_CHANNELS)


def test_rc_update_frame_header(center):
    frame = center.rc_update_frame()
    assert frame[:3] == b"$X<"
    assert decode_v2_header(frame[3:]) == (
        MSP_FLAG_DONT_REPLY,
        MSP_SET_RAW_RC,
        2 * MAX_RC_CHANNELS,
    )


def test_rc_update_frame_round_trips(center):
    center.set_channel(0, 1234)
    frame = center.rc_update_frame()
    frames = MspParser().feed_bytes(frame[:2] + b">" + frame[3:])
    assert len(frames) == 1
    values = struct.unpack(f"<{MAX_RC_CHANNELS}H", frames[0].payload)
    assert values == center.channels
    assert frames[0].cmd == MSP_SET_RAW_RC


def test_send_rc_update_goes_to_serial(center, links):
    ttl, udp, _ = links
    frame = center.send_rc_update()
    assert ttl.sent == [frame]
    assert udp.sent == []


def test_set_type_claims_and_releases(center):
    center.set_type(MessageType.CENTER)
    assert center.get_type() is MessageType.CENTER
    center.set_type(MessageType.UNKNOWN)
    assert center.get_type() is MessageType.UNKNOWN


def test_set_type_times_out_while_held(center):
    center.set_type(MessageType.CENTER)
    with pytest.raises(TimeoutError):
        center.set_type(MessageType.MSP, timeout=0.05)
    assert center.get_type() is MessageType.CENTER


def test_set_type_waits_for_release(center):
    center.set_type(MessageType.CENTER)
    worker = threading.Thread(target=center.set_type, args=(MessageType.MSP, 5))
    worker.start()
    time.sleep(0.05)
    assert center.get_type() is MessageType.CENTER
    center.set_type(MessageType.UNKNOWN)
    worker.join(5)
    assert center.get_type() is MessageType.MSP


def test_handle_wifi_msp_forwards_native_reply(center, links):
    _, udp, _ = links
    reply = MspFrame(MspVersion.V2_NATIVE, 0x1234, 0, b"\x01\x02\x03").to_v2_native()
    assert center.handle_wifi_msp(b"noise" + reply, wifi_active=True) == reply
    assert udp.sent == [reply]


def test_handle_wifi_msp_requires_wifi(center, links):
    _, udp, _ = links
    reply = MspFrame(MspVersion.V2_NATIVE, 7, 0, b"").to_v2_native()
    with pytest.raises(FrameError):
        center.handle_wifi_msp(reply, wifi_active=False)
    assert udp.sent == []


@pytest.mark.parametrize("data", [b"X" * 20, b"$X>", b"$" + b"\x00" * 300])
def test_handle_wifi_msp_rejects_bad_input(center, data):
    with pytest.raises(FrameError):
        center.handle_wifi_msp(data, wifi_active=True)


def test_handle_wifi_nomsp_forwards(center, links):
    _, udp, _ = links
    center.handle_wifi_nomsp(b"ok")
    assert udp.sent == [b"ok"]
    assert center.get_type() is MessageType.UNKNOWN


def test_handle_wireless_msp_claims_slot_when_reply_expected(center, links):
    ttl, _, _ = links
    frame = MspFrame(MspVersion.V2_NATIVE, 100, 0, b"").to_v2_native()
    center.handle_wireless_msp(frame)
    assert ttl.sent == [frame]
    assert center.get_type() is MessageType.MSP


def test_handle_wireless_msp_no_reply_keeps_slot(center, links):
    ttl, _, _ = links
    frame = MspFrame(MspVersion.V2_NATIVE, 100, MSP_FLAG_DONT_REPLY, b"").to_v2_native()
    center.handle_wireless_msp(frame)
    assert ttl.sent == [frame]
    assert center.get_type() is MessageType.UNKNOWN


def test_handle_wireless_msp_rejects_short(center, links):
    ttl, _, _ = links
    with pytest.raises(FrameError):
        center.handle_wireless_msp(b"$X<")
    assert ttl.sent == []


def test_handle_bt_package(center, links):
    _, _, bt = links
    center.handle_bt_package(b"\x01\x02")
    assert bt.sent == [b"\x01\x02"]
    assert center.get_type() is MessageType.UNKNOWN


def test_run_rc_loop_sends_until_stopped(center, links):
    ttl, _, _ = links
    stop = threading.Event()
    calls = []

    def should_send():
        calls.append(1)
        if len(calls) >= 3:
            stop.set()
        return True

    center.run_rc_loop(should_send, stop, interval=0.001)
    assert len(ttl.sent) == 3
    assert all(frame == center.rc_update_frame() for frame in ttl.sent)


def test_run_rc_loop_respects_predicate(center, links):
    ttl, _, _ = links
    stop = threading.Event()
    calls = []

    def should_send():
        calls.append(1)
        if len(calls) >= 2:
            stop.set()
        return False

    center.run_rc_loop(should_send, stop, interval=0.001)
    assert ttl.sent == []
    assert len(calls) == 2
    assert center.get_type() is MessageType.UNKNOWN
    assert center.channels[:4] == (1500, 1500, 885, 1500)