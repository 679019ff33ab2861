"""
Error classes for kitestream.
"""


class KiteStreamError(Exception):
    """Base error for streaming client operations."""
    pass


class NotConnectedError(KiteStreamError, ConnectionError):
    """A frame was sent while no websocket handle is live."""
    pass


class ProtocolError(KiteStreamError, ValueError):
    """Inbound text frame is malformed or lacks a message type."""
    pass


class DecodeError(KiteStreamError, ValueError):
    """Binary data could not be decoded."""
    pass


class FramingError(DecodeError):
    """Binary frame header or packet lengths are inconsistent with the buffer."""
    pass
