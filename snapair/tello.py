"""Tello-style text commands received over UDP."""

from __future__ import annotations

import logging
import re
from typing import Callable, Mapping, Sequence

from .constants import MODULE_TELLO_PROTO, TELLO_RESPONSE_ERR, TELLO_RESPONSE_OK
from .errors import CommandNotFound, CommandNotSupported, InvalidResponse, SnapAirError

log = logging.getLogger(MODULE_TELLO_PROTO)

_SEPARATORS = re.compile(r"[ ,\t\n]+")

Handler = Callable[[Sequence[str]], object]
Sender = Callable[[bytes], object]


def tokenize(data: bytes) -> list[str]:
    """Split a command line on spaces, commas, tabs and newlines."""
    text = bytes(data).split(b"\0", 1)[0].decode("latin-1")
    return [token for token in _SEPARATORS.split(text) if token]


class TelloProtocol:
    """Dispatches text commands to handlers and answers 'ok' or 'error'."""

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        ttl_send: Sender,
        udp_send: Sender,
        on_error: Callable[[], object] | None = None,
    ) -> None:
        self._handlers = dict(handlers)
        self._ttl_send = ttl_send
        self._udp_send = udp_send
        self._on_error = on_error

    def _signal_error(self) -> None:
        if self._on_error is not None:
            self._on_error()

    def parse(self, data: bytes) -> object:
        """Run the handler named by the first word; raise CommandNotFound if none."""
        if bytes(data) == b"\0":
            self._signal_error()
            raise CommandNotFound("empty command")
        tokens = tokenize(data)
        if not tokens:
            self._signal_error()
            raise CommandNotFound("empty command")
        name, *params = tokens
        handler = self._handlers.get(name)
        if handler is None:
            raise CommandNotFound(name)
        log.debug("command %s %s", name, params)
        return handler(params)

    def handle_tello(self, data: bytes) -> object:
        """Handle a datagram as a text command, replying over UDP."""
        data = bytes(data)
        if data.startswith(b"$"):
            raise SnapAirError("MSP frame is not a text command")
        if data.startswith(b"#"):
            raise CommandNotSupported("console input")
        try:
            result = self.parse(data)
        except CommandNotFound:
            self._ttl_send(data)
            raise
        except InvalidResponse:
            raise
        except Exception:
            self._udp_send(TELLO_RESPONSE_ERR.encode())
            raise
        self._udp_send(TELLO_RESPONSE_OK.encode())
        return result

    def handle_cli(self, data: bytes) -> None:
        """Pass console input straight to the serial link."""
        data = bytes(data)
        if data.startswith(b"$"):
            raise SnapAirError("MSP frame is not console input")
        self._ttl_send(data)