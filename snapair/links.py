"""UDP control server, UDP status client and the serial bridge."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Union

import serial

from .constants import (
    MODULE_UART,
    MODULE_UDP_CLT,
    MODULE_UDP_SRV,
    MSP_UART_BAUDRATE,
    STR_BUFFER_LEN,
    STR_IP_LEN,
    TIME_ONE_SECOND_IN_MS,
    UDP_RECEIVE_TIMEOUT_S,
)
from .errors import CommandNotSupported, FrameError, SnapAirError
from .message_center import MessageCenter, MessageType
from .state import LinkState, ProtocolState, WirelessMode
from .tello import TelloProtocol

srv_log = logging.getLogger(MODULE_UDP_SRV)
clt_log = logging.getLogger(MODULE_UDP_CLT)
ttl_log = logging.getLogger(MODULE_UART)

Sender = Callable[[bytes], object]
PeerSource = Union[str, Callable[[], str]]

_IDLE_WAIT_S = TIME_ONE_SECOND_IN_MS / 1000
_SERIAL_READ_TIMEOUT_S = 0.1


def _family(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def _link_usable(link: LinkState) -> bool:
    return link.state != ProtocolState.INVALID and link.mode != WirelessMode.BT_SPP


class UdpControlServer:
    """Receives control datagrams and routes them by the current protocol state."""

    def __init__(
        self,
        center: MessageCenter,
        tello: TelloProtocol,
        link_state: LinkState,
        port: int,
        host: str = "0.0.0.0",
    ) -> None:
        self._center = center
        self._tello = tello
        self._link = link_state
        self._sock = socket.socket(_family(host), socket.SOCK_DGRAM)
        self._sock.settimeout(UDP_RECEIVE_TIMEOUT_S)
        try:
            self._sock.bind((host, port))
        except OSError:
            self._sock.close()
            srv_log.error("socket unable to bind %s:%d", host, port)
            raise
        self.peer: tuple | None = None
        self.peer_host = ""

    @property
    def address(self) -> tuple:
        """The local address the server is bound to."""
        return self._sock.getsockname()

    def __enter__(self) -> "UdpControlServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def send(self, data: bytes) -> int:
        """Send to the last peer; on failure degrade the link and return 0."""
        if self.peer is None:
            self._link.degrade(ProtocolState.HALF_DUPLEX)
            srv_log.error("no peer to send %d bytes to", len(data))
            return 0
        try:
            return self._sock.sendto(bytes(data), self.peer)
        except OSError as exc:
            self._link.degrade(ProtocolState.HALF_DUPLEX)
            srv_log.error("error occurred during sending: %s", exc)
            return 0

    def handle_datagram(self, data: bytes, address: tuple) -> ProtocolState:
        """Route one received datagram and return the resulting protocol state."""
        data = bytes(data)
        state = self._link.upgrade(ProtocolState.FULL_DUPLEX)
        self.peer = address
        self.peer_host = str(address[0])[: STR_IP_LEN - 1]

        if state == ProtocolState.FULL_DUPLEX:
            try:
                self._center.handle_wireless_msp(data)
                return self._link.state
            except FrameError:
                state = ProtocolState.TELLO

        if state == ProtocolState.TELLO:
            self._link.upgrade(ProtocolState.TELLO)
            try:
                self._tello.handle_tello(data)
            except CommandNotSupported:
                self._link.upgrade(ProtocolState.CLI)
                self._tello.handle_cli(data)
            except Exception as exc:  # any failed command drops back to MSP
                srv_log.debug("text command failed: %s", exc)
                self._link.degrade(ProtocolState.FULL_DUPLEX)
        elif state == ProtocolState.CLI:
            try:
                self._tello.handle_cli(data)
            except SnapAirError:
                self._link.set(ProtocolState.FULL_DUPLEX)
        else:
            srv_log.warning("unexpected state %s, %d bytes from %s", state.name, len(data), self.peer_host)

        return self._link.state

    def serve_once(self) -> ProtocolState | None:
        """Receive and handle one datagram; None if skipped or nothing arrived."""
        if not _link_usable(self._link):
            return None
        try:
            data, address = self._sock.recvfrom(STR_BUFFER_LEN - 1)
        except OSError as exc:
            srv_log.debug("recvfrom failed: %s", exc)
            return None
        return self.handle_datagram(data, address)

    def serve_forever(self, stop_event: threading.Event) -> None:
        """Serve until ``stop_event`` is set, pausing while the link is unusable."""
        while not stop_event.is_set():
            if not _link_usable(self._link):
                stop_event.wait(_IDLE_WAIT_S)
                continue
            self.serve_once()

    def close(self) -> None:
        self._sock.close()


class UdpStatusClient:
    """Periodically reports the link state to the control peer."""

    def __init__(self, link_state: LinkState, peer: PeerSource, port: int) -> None:
        self._link = link_state
        self._peer = peer
        self.port = port
        self.timeout: float = UDP_RECEIVE_TIMEOUT_S
        self._sock: socket.socket | None = None

    def _peer_host(self) -> str:
        host = self._peer() if callable(self._peer) else self._peer
        return host or ""

    def status_message(self) -> bytes:
        """The status report text sent to the peer."""
        return f"udp sate ={int(self._link.state)} mode ={int(self._link.mode)}".encode()

    def run_once(self) -> bytes | None:
        """Send one report and wait for a reply; None if skipped or failed."""
        host = self._peer_host()
        if not _link_usable(self._link) or not host:
            return None
        if self._sock is None:
            self._sock = socket.socket(_family(host), socket.SOCK_DGRAM)
        self._sock.settimeout(self.timeout)
        try:
            self._sock.sendto(self.status_message(), (host, self.port))
        except OSError as exc:
            clt_log.debug("error occurred during sending: %s", exc)
            self._link.degrade(ProtocolState.HALF_DUPLEX)
            self.close()
            return None
        try:
            reply, _ = self._sock.recvfrom(STR_BUFFER_LEN - 1)
        except OSError as exc:
            clt_log.debug("recvfrom failed: %s", exc)
            self.close()
            return None
        if reply.startswith(b"OK: "):
            self.close()
        return reply

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None


class SerialBridge:
    """Moves bytes between the flight controller's serial port and the network."""

    def __init__(
        self,
        serial_port,
        center: MessageCenter,
        link_state: LinkState,
        udp_send: Sender,
    ) -> None:
        if isinstance(serial_port, str):
            serial_port = serial.serial_for_url(
                serial_port, baudrate=MSP_UART_BAUDRATE, timeout=_SERIAL_READ_TIMEOUT_S
            )
        self._port = serial_port
        self._center = center
        self._link = link_state
        self._udp_send = udp_send

    def send(self, data: bytes) -> None:
        self._port.write(bytes(data))

    def handle_incoming(self, data: bytes, bt_active: bool) -> None:
        """Route bytes read from the serial port."""
        data = bytes(data)
        if bt_active:
            if self._center.get_type() == MessageType.CENTER:
                self._center.handle_auc_msp(data)
            else:
                self._center.handle_bt_package(data)
            self._center.set_type(MessageType.UNKNOWN)
            return

        if self._link.state == ProtocolState.CLI:
            self._udp_send(data)
            return

        if self._center.get_type() == MessageType.CENTER:
            self._center.handle_auc_msp(data)
        else:
            try:
                self._center.handle_wifi_msp(data, self._link.wifi_active())
            except FrameError:
                self._center.handle_wifi_nomsp(data)
        self._center.set_type(MessageType.UNKNOWN)

    def run(self, stop_event: threading.Event) -> None:
        """Read and route serial data until ``stop_event`` is set."""
        while not stop_event.is_set():
            waiting = self._port.in_waiting or 1
            data = self._port.read(waiting)
            if data:
                ttl_log.debug("read %d bytes", len(data))
                self.handle_incoming(data, self._link.mode == WirelessMode.BT_SPP)