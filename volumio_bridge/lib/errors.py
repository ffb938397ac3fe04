"""
Exceptions for the Volumio bridge.

None of these are fatal to the service: callers log them and skip the one
affected operation.
"""


class VolumioError(Exception):
    """Base exception for all bridge errors."""


class TransportError(VolumioError):
    """Network failure, timeout, HTTP error status or non-JSON response."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class DecodeError(VolumioError):
    """Push notification body could not be decoded."""


class ValidationError(VolumioError):
    """Unknown playlist, missing or invalid command argument, bad schedule."""


class UnsupportedCommand(VolumioError):
    """Command is part of the player contract but not enabled for Volumio."""
