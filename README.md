# snapair

`snapair` moves flight-controller traffic between a UDP control port, a
Bluetooth-style link and a serial (TTL) port. It speaks MSP (v1, v2 over v1
and v2 native) and a small Tello-style text command protocol.

## Install

```
pip install snapair
```

The package depends on `pyserial`.

## Modules

### `snapair.msp`: MSP framing

- `crc8_dvb_s2(crc, byte)` and `crc8_dvb_s2_update(crc, data)` compute CRC-8/DVB-S2.
- `xor_checksum(checksum, data)` computes the MSP v1 XOR checksum.
- `decode_v2_header(data)` returns `(flags, cmd, size)`. It raises `FrameError` when given fewer than five bytes.
- `encode_frame(packet, version)` builds a complete frame from an `MspPacket` in any `MspVersion`.
  - The direction byte is `<`, or `!` when the packet's `result` is `MSP_RESULT_ERROR`.
  - Jumbo headers are added for large payloads.
- `MspParser` is a byte-by-byte state machine for reply frames (direction `>`).
  - `feed(byte)` returns an `MspFrame` when that byte completes a frame.
  - `feed_bytes(data)` returns the list of frames completed.
  - `reset()` drops a partial frame.
- `MspFrame.to_v2_native()` re-serialises a frame as a native v2 `$X>` frame.

### `snapair.message_center`: `MessageCenter`

`MessageCenter(ttl_send, udp_send, bt_send)` takes three callables that send bytes.

- It keeps the 18 RC channel values.
  - Set them with `set_channel(index, value)` or `set_channels(values)`.
  - `set_channels` accepts at most 17 values.
  - Both raise `IndexError` or `ValueError` on bad input.
- `rc_update_frame()` builds the v2 native `MSP_SET_RAW_RC` frame for the channel table.
  - `send_rc_update()` sends that frame to the serial side.
  - `run_rc_loop(should_send, stop_event, interval)` repeats the send (every 0.1 s by default) while `should_send()` is true.
- `set_type(kind, timeout)` and `get_type()` claim and report who owns the next serial reply (`MessageType`).
  - `set_type` waits while another owner holds the slot.
  - It raises `TimeoutError` if the slot is not freed in time.
- `handle_wireless_msp(data)` passes an MSP request from the network to serial.
- `handle_wifi_msp(data, wifi_active)` finds the first native v2 reply in serial data, sends it over UDP and returns it. It raises `FrameError` otherwise.
- `handle_wifi_nomsp` forwards data over UDP.
- `handle_bt_package` forwards data over the Bluetooth-style link.
- `handle_auc_msp` drops replies meant for the message centre.

### `snapair.tello`: text commands

- `tokenize(data)` splits a command line on spaces, commas, tabs and newlines.
- `TelloProtocol(handlers, ttl_send, udp_send, on_error)` dispatches the first word to a handler from `handlers`. Each handler receives the remaining words.
- `handle_tello(data)` replies over UDP:
  - On success it answers `ok`.
  - When a handler raises, it answers `error` and re-raises. The exception is `InvalidResponse`, which is re-raised with no reply.
  - An unknown command is passed to serial, and `CommandNotFound` is raised.
  - Input starting with `#` raises `CommandNotSupported`.
- `handle_cli(data)` passes console input straight to serial.

### `snapair.state`: link state

- `LinkState` is a thread-safe holder of a `ProtocolState` and a `WirelessMode`.
- `set(state)` changes the state unconditionally.
- `upgrade(state)` and `degrade(state)` only change the state upwards or downwards.
- `wifi_active()` is true for AP or station mode with a valid link.

### `snapair.links`: network and serial ends

- `UdpControlServer(center, tello, link_state, port, host)` binds a UDP socket and routes each datagram by protocol state:
  - MSP first.
  - Then text commands.
  - Then raw console input.
  - `send(data)` replies to the last peer.
  - `serve_once()` and `serve_forever(stop_event)` receive datagrams.
  - The server is a context manager.
- `UdpStatusClient(link_state, peer, port)` sends `status_message()` reports and waits for a reply with `run_once()`. `peer` is a host string or a callable returning one.
- `SerialBridge(serial_port, center, link_state, udp_send)` wraps a pyserial port object or a pyserial URL string, opened at 115200 baud.
  - `handle_incoming(data, bt_active)` routes serial data to the Bluetooth-style link or to UDP.
  - `run(stop_event)` reads the port in a loop.

### `snapair.events`: key events and helpers

`EventProcessor` turns `EventKind` events into mode switches, factory resets and reboots. It calls the callables you pass for each of these actions.

- Short presses within the reserve time advance the pending mode instead of switching.
- `check_station_fallback(station_started, mode_set)` sets station mode and posts a switch to AP when no station was started and no mode is set.

Helpers:

- `start_module(task, threaded, name, lock)` runs a task in a daemon thread or in place, holding `lock` while it does so.
- `reboot(seconds, restart, sleep, out)` prints a countdown and then calls `restart`.
- `alive(char, stop_event, interval, out)` prints a heartbeat character.
- `idle(stop_event, interval)` waits until stopped.

### `snapair.constants` and `snapair.errors`

`snapair.constants` holds sizes, timings, logger names and `time_diff_ms(prev, curr)`, which converts microsecond timestamps to milliseconds.

All errors derive from `snapair.errors.SnapAirError`:

- `CommandNotFound`
- `CommandNotSupported`
- `InvalidResponse`
- `FrameError`

## Example

```python
from snapair.msp import MspPacket, MspParser, MspVersion, encode_frame

frame = encode_frame(MspPacket(cmd=200, payload=b"\xdc\x05", flags=1),
                     MspVersion.V2_NATIVE)

parser = MspParser()
for decoded in parser.feed_bytes(frame.replace(b"$X<", b"$X>", 1)):
    print(decoded.cmd, decoded.payload)   # 200 b'\xdc\x05'
```

## What the package does not do

`snapair` is a library and installs no command.

It does not bring up Wi-Fi access points or stations, Bluetooth serial links, LEDs or a mode key. It does not store settings or run an HTTP API. Switching wireless modes, restoring factory settings and restarting are done by the callables you give to `EventProcessor` and `reboot`. The Bluetooth-style link is whatever `bt_send` callable you give to `MessageCenter`.