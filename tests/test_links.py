import socket
import threading
from types import SimpleNamespace

import pytest

from snapair.links import SerialBridge, UdpControlServer, UdpStatusClient
from snapair.message_center import MessageCenter, MessageType
from snapair.msp import (
    MSP_SET_RAW_RC,
    MspFrame,
    MspPacket,
    MspVersion,
    encode_frame,
)
from snapair.state import LinkState, ProtocolState, WirelessMode
from snapair.tello import TelloProtocol


class Recorder:
    def __init__(self):
        self.items = []

    def __call__(self, data):
        self.items.append(bytes(data))


def _failing(params):
    raise RuntimeError("handler failed")


@pytest.fixture
def peer():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2)
    yield sock
    sock.close()


@pytest.fixture
def rig():
    ttl = Recorder()
    bt = Recorder()
    holder = {}
    link = LinkState(state=ProtocolState.IDLE, mode=WirelessMode.WIFI_AP)
    center = MessageCenter(ttl, lambda d: holder["server"].send(d), bt)
    tello = TelloProtocol(
        {"command": lambda params: None, "arm": _failing},
        ttl,
        lambda d: holder["server"].send(d),
    )
    server = UdpControlServer(center, tello, link, 0, "127.0.0.1")
    holder["server"] = server
    yield SimpleNamespace(ttl=ttl, bt=bt, link=link, center=center, server=server)
    server.close()


def test_wireless_msp_request_goes_to_serial(rig, peer):
    data = encode_frame(
        MspPacket(cmd=MSP_SET_RAW_RC, payload=b"\x01\x02", flags=1), MspVersion.V2_NATIVE
    )
    state = rig.server.handle_datagram(data, peer.getsockname())
    assert state == ProtocolState.FULL_DUPLEX
    assert rig.ttl.items == [data]


def test_text_command_replies_ok(rig, peer):
    state = rig.server.handle_datagram(b"command", peer.getsockname())
    assert state == ProtocolState.TELLO
    reply, _ = peer.recvfrom(64)
    assert reply == b"ok"
    assert rig.server.peer_host == "127.0.0.1"


def test_handler_error_replies_error_and_degrades(rig, peer):
    state = rig.server.handle_datagram(b"arm", peer.getsockname())
    reply, _ = peer.recvfrom(64)
    assert reply == b"error"
    assert state == ProtocolState.FULL_DUPLEX


def test_unknown_command_forwarded_and_degraded(rig, peer):
    state = rig.server.handle_datagram(b"takeoff", peer.getsockname())
    assert state == ProtocolState.FULL_DUPLEX
    assert rig.ttl.items == [b"takeoff"]


def test_console_input_switches_to_cli(rig, peer):
    state = rig.server.handle_datagram(b"#help", peer.getsockname())
    assert state == ProtocolState.CLI
    assert rig.ttl.items == [b"#help"]


def test_cli_state_passes_text(rig, peer):
    rig.link.set(ProtocolState.CLI)
    state = rig.server.handle_datagram(b"status", peer.getsockname())
    assert state == ProtocolState.CLI
    assert rig.ttl.items == [b"status"]


def test_cli_state_msp_returns_to_full_duplex(rig, peer):
    rig.link.set(ProtocolState.CLI)
    state = rig.server.handle_datagram(b"$X<\x00\x00\x00\x00\x00\x00", peer.getsockname())
    assert state == ProtocolState.FULL_DUPLEX
    assert rig.ttl.items == []


def test_send_without_peer_degrades(rig):
    rig.link.set(ProtocolState.FULL_DUPLEX)
    assert rig.server.send(b"x") == 0
    assert rig.link.state == ProtocolState.HALF_DUPLEX


def test_serve_once_round_trip(rig, peer):
    peer.sendto(b"command", rig.server.address)
    assert rig.server.serve_once() == ProtocolState.TELLO
    reply, _ = peer.recvfrom(64)
    assert reply == b"ok"


def test_serve_once_skips_in_bluetooth_mode(rig):
    rig.link.mode = WirelessMode.BT_SPP
    assert rig.server.serve_once() is None
    assert rig.link.state == ProtocolState.IDLE


def test_status_message_format():
    link = LinkState(state=ProtocolState.FULL_DUPLEX, mode=WirelessMode.WIFI_AP)
    client = UdpStatusClient(link, "127.0.0.1", 9)
    assert client.status_message() == b"udp sate =3 mode =1"


def test_status_client_skips_without_peer():
    link = LinkState(state=ProtocolState.FULL_DUPLEX, mode=WirelessMode.WIFI_AP)
    client = UdpStatusClient(link, lambda: "", 9)
    assert client.run_once() is None
    assert link.state == ProtocolState.FULL_DUPLEX


def test_status_client_round_trip(peer):
    link = LinkState(state=ProtocolState.FULL_DUPLEX, mode=WirelessMode.WIFI_AP)
    client = UdpStatusClient(link, "127.0.0.1", peer.getsockname()[1])
    received = []

    def respond():
        data, address = peer.recvfrom(256)
        received.append(data)
        peer.sendto(b"OK: done", address)

    thread = threading.Thread(target=respond)
    thread.start()
    reply = client.run_once()
    thread.join(timeout=2)
    client.close()
    assert reply == b"OK: done"
    assert received == [client.status_message()]


def test_status_client_without_reply_returns_none(peer):
    link = LinkState(state=ProtocolState.FULL_DUPLEX, mode=WirelessMode.WIFI_STA)
    client = UdpStatusClient(link, "127.0.0.1", peer.getsockname()[1])
    client.timeout = 0.2
    assert client.run_once() is None
    data, _ = peer.recvfrom(256)
    assert data == client.status_message()


class FakeSerial:
    def __init__(self, chunks, stop_event):
        self.chunks = list(chunks)
        self.writes = []
        self.stop_event = stop_event

    @property
    def in_waiting(self):
        return len(self.chunks[0]) if self.chunks else 0

    def read(self, size):
        if self.chunks:
            return self.chunks.pop(0)
        self.stop_event.set()
        return b""

    def write(self, data):
        self.writes.append(bytes(data))


@pytest.fixture
def bridge_rig():
    ttl, center_udp, bt, bridge_udp = Recorder(), Recorder(), Recorder(), Recorder()
    center = MessageCenter(ttl, center_udp, bt)
    link = LinkState(state=ProtocolState.FULL_DUPLEX, mode=WirelessMode.WIFI_AP)
    stop = threading.Event()
    port = FakeSerial([], stop)
    bridge = SerialBridge(port, center, link, bridge_udp)
    return SimpleNamespace(
        center=center, center_udp=center_udp, bt=bt, bridge_udp=bridge_udp,
        link=link, stop=stop, port=port, bridge=bridge,
    )


def test_bridge_send_writes_to_port(bridge_rig):
    bridge_rig.bridge.send(b"abc")
    assert bridge_rig.port.writes == [b"abc"]


def test_bluetooth_package_forwarded(bridge_rig):
    bridge_rig.bridge.handle_incoming(b"data", True)
    assert bridge_rig.bt.items == [b"data"]
    assert bridge_rig.center.get_type() == MessageType.UNKNOWN


def test_bluetooth_center_reply_dropped(bridge_rig):
    bridge_rig.center.set_type(MessageType.CENTER)
    bridge_rig.bridge.handle_incoming(b"data", True)
    assert bridge_rig.bt.items == []
    assert bridge_rig.center.get_type() == MessageType.UNKNOWN


def test_cli_state_sends_raw_over_udp(bridge_rig):
    bridge_rig.link.set(ProtocolState.CLI)
    bridge_rig.bridge.handle_incoming(b"console out", False)
    assert bridge_rig.bridge_udp.items == [b"console out"]
    assert bridge_rig.center_udp.items == []


def test_wifi_msp_reply_forwarded(bridge_rig):
    frame = MspFrame(MspVersion.V2_NATIVE, 100, 0, b"\x01\x02").to_v2_native()
    bridge_rig.bridge.handle_incoming(frame, False)
    assert bridge_rig.center_udp.items == [frame]


def test_wifi_text_forwarded_as_is(bridge_rig):
    bridge_rig.bridge.handle_incoming(b"hello world", False)
    assert bridge_rig.center_udp.items == [b"hello world"]
    assert bridge_rig.center.get_type() == MessageType.UNKNOWN


def test_run_routes_serial_chunks(bridge_rig):
    bridge_rig.link.set(ProtocolState.CLI)
    bridge_rig.port.chunks = [b"abc", b"def"]
    bridge_rig.bridge.run(bridge_rig.stop)
    assert bridge_rig.bridge_udp.items == [b"abc", b"def"]
    assert bridge_rig.stop.is_set()


def test_loopback_url_port_round_trip():
    stop = threading.Event()
    received = []

    def udp_send(data):
        received.append(bytes(data))
        stop.set()

    center = MessageCenter(Recorder(), Recorder(), Recorder())
    link = LinkState(state=ProtocolState.CLI, mode=WirelessMode.WIFI_AP)
    bridge = SerialBridge("loop://", center, link, udp_send)
    bridge.send(b"ping")
    bridge.run(stop)
    assert received == [b"ping"]
    assert link.state == ProtocolState.CLI
    assert center.get_type() == MessageType.UNKNOWN