"""Link state shared by the network and serial bridges."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field


class ProtocolState(enum.IntEnum):
    """How far the control link has come up, from lowest to highest."""

    INVALID = 0
    IDLE = 1
    HALF_DUPLEX = 2
    FULL_DUPLEX = 3
    TELLO = 4
    CLI = 5


class WirelessMode(enum.IntEnum):
    """Which wireless service carries the control link."""

    NULL = 0
    WIFI_AP = 1
    WIFI_STA = 2
    BT_SPP = 3


@dataclass
class LinkState:
    """Thread-safe holder of the current protocol state and wireless mode."""

    state: ProtocolState = ProtocolState.IDLE
    mode: WirelessMode = WirelessMode.NULL
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def set(self, state: ProtocolState) -> ProtocolState:
        """Force the protocol state."""
        with self._lock:
            self.state = ProtocolState(state)
            return self.state

    def upgrade(self, state: ProtocolState) -> ProtocolState:
        """Move to ``state`` only if it is higher than the current one."""
        state = ProtocolState(state)
        with self._lock:
            if state > self.state:
                self.state = state
            return self.state

    def degrade(self, state: ProtocolState) -> ProtocolState:
        """Move to ``state`` only if it is lower than the current one."""
        state = ProtocolState(state)
        with self._lock:
            if state < self.state:
                self.state = state
            return self.state

    def wifi_active(self) -> bool:
        """True when a Wi-Fi mode (AP or station) carries a valid link."""
        with self._lock:
            return (
                self.mode in (WirelessMode.WIFI_AP, WirelessMode.WIFI_STA)
                and self.state is not ProtocolState.INVALID
            )