"""MSP v1 / v2 framing: checksums, frame encoding and a streaming parser."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterable

from .errors import FrameError

MSP_V2_FRAME_ID = 255
MSP_PORT_INBUF_SIZE = 192
JUMBO_FRAME_SIZE_LIMIT = 255

MSP_RESULT_ACK = 1
MSP_RESULT_ERROR = -1
MSP_RESULT_NO_REPLY = 0

MSP_FLAG_DONT_REPLY = 1 << 0

MSP_SET_RAW_RC = 200
MAX_RC_CHANNELS = 18
DEFAULT_RC_CHANNELS = (1500, 1500, 885, 1500) + (1200,) * (MAX_RC_CHANNELS - 4)

_V1_HEADER_SIZE = 2
_V2_HEADER = struct.Struct("<BHH")
_V2_HEADER_SIZE = _V2_HEADER.size


class MspVersion(enum.IntEnum):
    V1 = 0
    V2_OVER_V1 = 1
    V2_NATIVE = 2


_MAGIC = {
    MspVersion.V1: b"M",
    MspVersion.V2_OVER_V1: b"M",
    MspVersion.V2_NATIVE: b"X",
}


class MspState(enum.IntEnum):
    IDLE = 0
    HEADER_START = 1
    HEADER_M = 2
    HEADER_X = 3
    HEADER_V1 = 4
    PAYLOAD_V1 = 5
    CHECKSUM_V1 = 6
    HEADER_V2_OVER_V1 = 7
    PAYLOAD_V2_OVER_V1 = 8
    CHECKSUM_V2_OVER_V1 = 9
    HEADER_V2_NATIVE = 10
    PAYLOAD_V2_NATIVE = 11
    CHECKSUM_V2_NATIVE = 12
    COMMAND_RECEIVED = 13


def crc8_dvb_s2(crc: int, byte: int) -> int:
    """Advance a CRC-8/DVB-S2 value by one byte."""
    crc = (crc ^ byte) & 0xFF
    for _ in range(8):
        if crc & 0x80:
            crc = ((crc << 1) ^ 0xD5) & 0xFF
        else:
            crc = (crc << 1) & 0xFF
    return crc


def crc8_dvb_s2_update(crc: int, data: Iterable[int]) -> int:
    """Advance a CRC-8/DVB-S2 value over a sequence of bytes."""
    for byte in data:
        crc = crc8_dvb_s2(crc, byte)
    return crc


def xor_checksum(checksum: int, data: Iterable[int]) -> int:
    """MSP v1 checksum: XOR of every byte."""
    for byte in data:
        checksum ^= byte
    return checksum & 0xFF


def decode_v2_header(data: bytes) -> tuple[int, int, int]:
    """Return (flags, cmd, size) from the first five bytes of ``data``."""
    if len(data) < _V2_HEADER_SIZE:
        raise FrameError(f"MSP v2 header needs {_V2_HEADER_SIZE} bytes, got {len(data)}")
    return _V2_HEADER.unpack_from(bytes(data[:_V2_HEADER_SIZE]))


@dataclass
class MspPacket:
    """An outgoing MSP message."""

    cmd: int
    payload: bytes = b""
    flags: int = 0
    result: int = 0


@dataclass(frozen=True)
class MspFrame:
    """A complete MSP message taken off the wire."""

    version: MspVersion
    cmd: int
    flags: int
    payload: bytes

    def to_v2_native(self) -> bytes:
        """Serialise as a native v2 reply frame ('$X>')."""
        header = _V2_HEADER.pack(self.flags & 0xFF, self.cmd & 0xFFFF, len(self.payload) & 0xFFFF)
        crc = crc8_dvb_s2_update(crc8_dvb_s2_update(0, header), self.payload)
        return b"$X>" + header + self.payload + bytes((crc,))


def encode_frame(packet: MspPacket, version: MspVersion) -> bytes:
    """Build the complete wire frame for ``packet`` in the given MSP version."""
    try:
        version = MspVersion(version)
    except ValueError:
        raise FrameError(f"unknown MSP version {version!r}") from None

    payload = bytes(packet.payload)
    size = len(payload)
    direction = b"!" if packet.result == MSP_RESULT_ERROR else b"<"
    header = bytearray(b"$" + _MAGIC[version] + direction)

    if version is MspVersion.V1:
        if size >= JUMBO_FRAME_SIZE_LIMIT:
            header += bytes((JUMBO_FRAME_SIZE_LIMIT, packet.cmd & 0xFF))
            header += struct.pack("<H", size & 0xFFFF)
        else:
            header += bytes((size, packet.cmd & 0xFF))
        checksum = xor_checksum(xor_checksum(0, header[3:]), payload)
        trailer = bytes((checksum,))
    elif version is MspVersion.V2_OVER_V1:
        v1_size = _V2_HEADER_SIZE + size + 1
        v2_header = _V2_HEADER.pack(packet.flags & 0xFF, packet.cmd & 0xFFFF, size & 0xFFFF)
        if v1_size >= JUMBO_FRAME_SIZE_LIMIT:
            header += bytes((JUMBO_FRAME_SIZE_LIMIT, MSP_V2_FRAME_ID)) + v2_header
            header += struct.pack("<H", v1_size & 0xFFFF)
        else:
            header += bytes((v1_size, MSP_V2_FRAME_ID)) + v2_header
        crc2 = crc8_dvb_s2_update(crc8_dvb_s2_update(0, v2_header), payload)
        crc1 = xor_checksum(xor_checksum(xor_checksum(0, header[3:]), payload), (crc2,))
        trailer = bytes((crc2, crc1))
    else:
        v2_header = _V2_HEADER.pack(packet.flags & 0xFF, packet.cmd & 0xFFFF, size & 0xFFFF)
        header += v2_header
        crc2 = crc8_dvb_s2_update(crc8_dvb_s2_update(0, v2_header), payload)
        trailer = bytes((crc2,))

    return bytes(header) + payload + trailer


class MspParser:
    """Byte-at-a-time MSP reply parser (frames with the '>' direction)."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Return to the idle state and drop any partial frame."""
        self.state = MspState.IDLE
        self.version = MspVersion.V1
        self.data_size = 0
        self.cmd = 0
        self.flags = 0
        self.checksum1 = 0
        self.checksum2 = 0
        self._buf = bytearray()

    def _start_payload(self, size: int, payload_state: MspState, checksum_state: MspState) -> None:
        self.data_size = size
        self._buf.clear()
        self.state = payload_state if size > 0 else checksum_state

    def feed(self, byte: int) -> MspFrame | None:
        """Consume one byte; return the frame it completes, if any."""
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"byte out of range: {byte}")
        c = byte
        state = self.state

        if state in (MspState.IDLE, MspState.COMMAND_RECEIVED):
            if c == ord("$"):
                self.version = MspVersion.V1
                self.state = MspState.HEADER_START

        elif state is MspState.HEADER_START:
            if c == ord("M"):
                self.state = MspState.HEADER_M
            elif c == ord("X"):
                self.state = MspState.HEADER_X
            else:
                self.state = MspState.IDLE

        elif state is MspState.HEADER_M:
            if c == ord(">"):
                self._buf.clear()
                self.checksum1 = 0
                self.checksum2 = 0
                self.state = MspState.HEADER_V1
            else:
                self.state = MspState.IDLE

        elif state is MspState.HEADER_X:
            if c == ord(">"):
                self._buf.clear()
                self.checksum2 = 0
                self.version = MspVersion.V2_NATIVE
                self.state = MspState.HEADER_V2_NATIVE
            else:
                self.state = MspState.IDLE

        elif state is MspState.HEADER_V1:
            self._buf.append(c)
            self.checksum1 ^= c
            if len(self._buf) == _V1_HEADER_SIZE:
                size, cmd = self._buf
                if size > MSP_PORT_INBUF_SIZE:
                    self.state = MspState.IDLE
                elif cmd == MSP_V2_FRAME_ID:
                    if size >= _V2_HEADER_SIZE + 1:
                        self.version = MspVersion.V2_OVER_V1
                        self.state = MspState.HEADER_V2_OVER_V1
                    else:
                        self.state = MspState.IDLE
                else:
                    self.cmd = cmd
                    self.flags = 0
                    self._start_payload(size, MspState.PAYLOAD_V1, MspState.CHECKSUM_V1)

        elif state is MspState.PAYLOAD_V1:
            self._buf.append(c)
            self.checksum1 ^= c
            if len(self._buf) == self.data_size:
                self.state = MspState.CHECKSUM_V1

        elif state is MspState.CHECKSUM_V1:
            self.state = MspState.COMMAND_RECEIVED if self.checksum1 == c else MspState.IDLE

        elif state is MspState.HEADER_V2_OVER_V1:
            self._buf.append(c)
            self.checksum1 ^= c
            self.checksum2 = crc8_dvb_s2(self.checksum2, c)
            if len(self._buf) == _V1_HEADER_SIZE + _V2_HEADER_SIZE:
                flags, cmd, size = decode_v2_header(self._buf[_V1_HEADER_SIZE:])
                self.data_size = size
                if size > MSP_PORT_INBUF_SIZE:
                    self.state = MspState.IDLE
                else:
                    self.cmd = cmd
                    self.flags = flags
                    self._start_payload(
                        size, MspState.PAYLOAD_V2_OVER_V1, MspState.CHECKSUM_V2_OVER_V1
                    )

        elif state is MspState.PAYLOAD_V2_OVER_V1:
            self.checksum2 = crc8_dvb_s2(self.checksum2, c)
            self.checksum1 ^= c
            self._buf.append(c)
            if len(self._buf) == self.data_size:
                self.state = MspState.CHECKSUM_V2_OVER_V1

        elif state is MspState.CHECKSUM_V2_OVER_V1:
            self.checksum1 ^= c
            self.state = MspState.CHECKSUM_V1 if self.checksum2 == c else MspState.IDLE

        elif state is MspState.HEADER_V2_NATIVE:
            self._buf.append(c)
            self.checksum2 = crc8_dvb_s2(self.checksum2, c)
            if len(self._buf) == _V2_HEADER_SIZE:
                flags, cmd, size = decode_v2_header(self._buf)
                if size > MSP_PORT_INBUF_SIZE:
                    self.state = MspState.IDLE
                else:
                    self.cmd = cmd
                    self.flags = flags
                    self._start_payload(
                        size, MspState.PAYLOAD_V2_NATIVE, MspState.CHECKSUM_V2_NATIVE
                    )

        elif state is MspState.PAYLOAD_V2_NATIVE:
            self.checksum2 = crc8_dvb_s2(self.checksum2, c)
            self._buf.append(c)
            if len(self._buf) == self.data_size:
                self.state = MspState.CHECKSUM_V2_NATIVE

        elif state is MspState.CHECKSUM_V2_NATIVE:
            self.state = MspState.COMMAND_RECEIVED if self.checksum2 == c else MspState.IDLE

        if self.state is MspState.COMMAND_RECEIVED and state is not MspState.COMMAND_RECEIVED:
            return MspFrame(self.version, self.cmd, self.flags, bytes(self._buf))
        return None

    def feed_bytes(self, data: Iterable[int]) -> list[MspFrame]:
        """Consume every byte of ``data`` and return the frames completed."""
        frames = []
        for byte in data:
            frame = self.feed(byte)
            if frame is not None:
                frames.append(frame)
        return frames