"""Exceptions raised by the bridge."""


class SnapAirError(Exception):
    """Base class for every error raised by the package."""


class CommandNotFound(SnapAirError):
    """A text command was empty or matched no known handler."""


class CommandNotSupported(SnapAirError):
    """The input belongs to a protocol this handler does not process."""


class InvalidResponse(SnapAirError):
    """The handler has already answered; no generic reply should follow."""


class FrameError(SnapAirError):
    """An MSP frame is malformed, too short or cannot be built."""