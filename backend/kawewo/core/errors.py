# kawewo/core/errors.py


class KawewoError(Exception):
    """Base class for relay errors."""


class StoreUnavailable(KawewoError):
    """The durable store could not be read or written."""


class ProtocolError(KawewoError):
    """An inbound session message could not be decoded."""

    def __init__(self, message: str, raw=None):
        super().__init__(message)
        self.raw = raw
