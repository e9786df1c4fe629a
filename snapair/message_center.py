"""Routing of MSP traffic between the serial link, UDP and Bluetooth."""

from __future__ import annotations

import enum
import logging
import struct
import threading
from typing import Callable, Iterable

from .constants import MODULE_MSP_PROTO, STR_BUFFER_LEN, TIME_100_MS
from .errors import FrameError
from .msp import (
    DEFAULT_RC_CHANNELS,
    MAX_RC_CHANNELS,
    MSP_FLAG_DONT_REPLY,
    MSP_SET_RAW_RC,
    MspPacket,
    MspParser,
    MspVersion,
    decode_v2_header,
    encode_frame,
)

log = logging.getLogger(MODULE_MSP_PROTO)

_MIN_MSP_FRAME = 9

Sender = Callable[[bytes], object]


class MessageType(enum.IntEnum):
    """Who owns the reply expected on the serial link."""

    UNKNOWN = 0
    CENTER = 1
    MSP = 2


def _check_msp_start(data: bytes) -> None:
    if not data or data[0] != ord("$") or len(data) < _MIN_MSP_FRAME:
        raise FrameError("not an MSP frame")


class MessageCenter:
    """Keeps the RC channel table and forwards MSP frames between links."""

    def __init__(self, ttl_send: Sender, udp_send: Sender, bt_send: Sender) -> None:
        self._ttl_send = ttl_send
        self._udp_send = udp_send
        self._bt_send = bt_send
        self._channels = list(DEFAULT_RC_CHANNELS)
        self._type = MessageType.UNKNOWN
        self._cond = threading.Condition()
        self._parser = MspParser()

    @property
    def channels(self) -> tuple[int, ...]:
        return tuple(self._channels)

    def set_type(self, kind: MessageType, timeout: float | None = None) -> None:
        """Claim the serial reply slot, waiting while another owner holds it."""
        kind = MessageType(kind)
        with self._cond:
            if kind is MessageType.UNKNOWN or kind is self._type:
                self._type = kind
                self._cond.notify_all()
                return
            if not self._cond.wait_for(lambda: self._type is MessageType.UNKNOWN, timeout):
                raise TimeoutError(f"message slot still held by {self._type.name}")
            self._type = kind

    def get_type(self) -> MessageType:
        with self._cond:
            return self._type

    def set_channel(self, index: int, value: int) -> None:
        if not 0 <= index < MAX_RC_CHANNELS:
            raise IndexError(f"RC channel index out of range: {index}")
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"RC channel value out of range: {value}")
        self._channels[index] = value

    def set_channels(self, values: Iterable[int]) -> None:
        """Overwrite the leading channels with ``values``."""
        values = list(values)
        if len(values) >= MAX_RC_CHANNELS:
            raise ValueError(f"too many RC channel values: {len(values)}")
        for value in values:
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"RC channel value out of range: {value}")
        self._channels[: len(values)] = values

    def rc_update_frame(self) -> bytes:
        """The MSP v2 SET_RAW_RC frame carrying the current channel table."""
        payload = struct.pack(f"<{MAX_RC_CHANNELS}H", *self._channels)
        packet = MspPacket(cmd=MSP_SET_RAW_RC, payload=payload, flags=MSP_FLAG_DONT_REPLY)
        return encode_frame(packet, MspVersion.V2_NATIVE)

    def send_rc_update(self) -> bytes:
        frame = self.rc_update_frame()
        self._ttl_send(frame)
        return frame

    def handle_wifi_msp(self, data: bytes, wifi_active: bool) -> bytes:
        """Forward the first native v2 reply in ``data`` over UDP and return it."""
        _check_msp_start(data)
        if len(data) > STR_BUFFER_LEN:
            log.warning("handle_wifi_msp: %d bytes is too long", len(data))
            raise FrameError(f"MSP data too long: {len(data)} bytes")
        self._parser.reset()
        for frame in self._parser.feed_bytes(data):
            if wifi_active and frame.version is MspVersion.V2_NATIVE:
                reply = frame.to_v2_native()
                self._udp_send(reply)
                return reply
        raise FrameError("no forwardable MSP reply found")

    def handle_wifi_nomsp(self, data: bytes) -> None:
        self._udp_send(bytes(data))

    def handle_wireless_msp(self, data: bytes) -> None:
        """Pass an MSP request from the network to the serial link."""
        _check_msp_start(data)
        flags, _cmd, _size = decode_v2_header(data[3:])
        if flags == 0:
            self.set_type(MessageType.MSP)
        self._ttl_send(bytes(data))

    def handle_bt_package(self, data: bytes) -> None:
        self._bt_send(bytes(data))

    def handle_auc_msp(self, data: bytes) -> None:
        """Consume a reply addressed to the message centre; such replies are dropped."""
        log.debug("message centre reply of %d bytes dropped", len(data))

    def run_rc_loop(
        self,
        should_send: Callable[[], bool],
        stop_event: threading.Event,
        interval: float = TIME_100_MS / 1000,
    ) -> None:
        """Send the RC table every ``interval`` seconds while ``should_send`` holds."""
        while not stop_event.is_set():
            if should_send():
                self.send_rc_update()
            stop_event.wait(interval)