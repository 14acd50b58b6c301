"""Exception hierarchy shared by the acquisition pipeline."""

from __future__ import annotations


class MediarrError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(MediarrError):
    """A provider or library was initialised without a required setting."""


class TransportError(MediarrError):
    """The request never produced a response (timeout, connection failure)."""


class HTTPStatusError(MediarrError):
    """The remote returned a status code the caller cannot use."""

    def __init__(self, message: str, *, status_code: int, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class DecodeError(MediarrError):
    """A response body could not be decoded into the expected shape."""


class ExpressionError(MediarrError):
    """A filter expression failed to compile or evaluate."""

    def __init__(self, message: str, *, expression: str | None = None):
        super().__init__(message)
        self.expression = expression


class CacheError(MediarrError):
    """The validation cache could not persist an entry."""
