"""Mode-key event handling and small process helpers (module start, reboot, heartbeat)."""

from __future__ import annotations

import contextlib
import enum
import logging
import sys
import threading
import time
from typing import Any, Callable, ContextManager, TextIO

from .constants import (
    ALIVE_CHARACTER,
    MODULE_EVT_PROC,
    TIME_ONE_SECOND_IN_MS,
    time_diff_ms,
)
from .state import WirelessMode

log = logging.getLogger(MODULE_EVT_PROC)

_ONE_SECOND = TIME_ONE_SECOND_IN_MS / 1000
_REBOOT_DELAY_S = 3
DEFAULT_KEY_RESERVE_MS = 1000


class EventKind(enum.IntEnum):
    """Events posted to the process loop."""

    KEY_RELEASED = 0
    KEY_SHORT_PRESSED = 1
    KEY_LONG_PRESSED = 2
    MODE_SWITCH = 3
    REBOOT = 4


def start_module(
    task: Callable[[], Any],
    threaded: bool = True,
    name: str | None = None,
    lock: ContextManager[Any] | None = None,
) -> threading.Thread | Any:
    """Start ``task`` in a daemon thread, or run it in place, holding ``lock`` meanwhile.

    Returns the started thread when ``threaded`` is true, otherwise the task's result.
    """
    if not callable(task):
        raise TypeError("task must be callable")
    guard = lock if lock is not None else contextlib.nullcontext()
    with guard:
        if threaded:
            thread = threading.Thread(target=task, name=name, daemon=True)
            thread.start()
            return thread
        return task()


def reboot(
    seconds: int,
    restart: Callable[[], Any],
    sleep: Callable[[float], Any] = time.sleep,
    out: TextIO | None = None,
) -> Any:
    """Count down ``seconds`` to zero, one line per second, then call ``restart``."""
    stream = out if out is not None else sys.stdout
    for remaining in range(seconds, -1, -1):
        stream.write(f"Restarting in {remaining} seconds...\n")
        sleep(_ONE_SECOND)
    stream.write("Restarting now.\n")
    stream.flush()
    return restart()


def alive(
    char: str = ALIVE_CHARACTER,
    stop_event: threading.Event | None = None,
    interval: float = _ONE_SECOND,
    out: TextIO | None = None,
) -> None:
    """Print ``char`` every ``interval`` seconds until ``stop_event`` is set."""
    stream = out if out is not None else sys.stdout
    event = stop_event if stop_event is not None else threading.Event()
    while not event.is_set():
        stream.write(char)
        stream.flush()
        event.wait(interval)


def idle(stop_event: threading.Event | None = None, interval: float = _ONE_SECOND) -> None:
    """Do nothing, waking every ``interval`` seconds, until ``stop_event`` is set."""
    event = stop_event if stop_event is not None else threading.Event()
    while not event.wait(interval):
        pass


def _monotonic_us() -> int:
    return time.monotonic_ns() // 1000


class EventProcessor:
    """Turns mode-key and system events into wireless mode switches and reboots."""

    def __init__(
        self,
        mode_switch: Callable[[int], Any],
        mode_next: Callable[[], int],
        mode_get: Callable[[], int],
        restore_factory: Callable[[], Any],
        reboot: Callable[[int], Any],
        clock: Callable[[], int] = _monotonic_us,
        reserve_ms: int = DEFAULT_KEY_RESERVE_MS,
    ) -> None:
        self._mode_switch = mode_switch
        self._mode_next = mode_next
        self._mode_get = mode_get
        self._restore_factory = restore_factory
        self._reboot = reboot
        self._clock = clock
        self.reserve_ms = reserve_ms
        self.next_mode = int(WirelessMode.WIFI_AP)
        self.press_act_time = 0
        self.press_rel_time = 0

    def handle(self, event: int, data: int | None = None) -> Any:
        """Process one event; returns what the triggered action returned, if any."""
        curr = self._clock()
        try:
            kind = EventKind(event)
        except ValueError:
            log.error("unknown event %r", event)
            return None

        if kind is EventKind.KEY_SHORT_PRESSED:
            if data is not None:
                return self._mode_switch(int(data))
            if time_diff_ms(self.press_rel_time, curr) > self.reserve_ms:
                self.next_mode = int(self._mode_next())
            since_press = time_diff_ms(self.press_act_time, curr)
            if since_press < self.reserve_ms:
                self.next_mode += 1
                log.info(
                    "short press, act mode %d %d < %d in ms",
                    self.next_mode,
                    since_press,
                    self.reserve_ms,
                )
                return None
            self.press_act_time = curr
            return self._mode_switch(self.next_mode)

        if kind is EventKind.KEY_RELEASED:
            self.press_rel_time = curr
            return None

        if kind is EventKind.KEY_LONG_PRESSED:
            self._restore_factory()
            return self._reboot(_REBOOT_DELAY_S)

        if kind is EventKind.MODE_SWITCH:
            return self._mode_switch(int(WirelessMode.WIFI_AP))

        return self._reboot(_REBOOT_DELAY_S)

    def check_station_fallback(self, station_started: bool, mode_set: Callable[[int], Any]) -> bool:
        """Fall back to AP mode when the station never started and no mode is set."""
        if station_started or self._mode_get() != WirelessMode.NULL:
            return False
        mode_set(int(WirelessMode.WIFI_STA))
        log.info("station not started, triggering mode switch")
        self.handle(EventKind.MODE_SWITCH)
        return True