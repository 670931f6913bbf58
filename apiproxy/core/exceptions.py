"""Core exceptions for the forwarding pipeline."""

from __future__ import annotations


class ProxyError(Exception):
    """Base exception for forwarding errors.

    ``status_code`` is the status a host should answer with when the error
    is raised before the response status line was committed.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        committed: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.committed = committed
        if status_code is not None:
            self.status_code = status_code


class DecodeError(ProxyError):
    """Raised when a JSON or gzip body cannot be decoded."""

    status_code = 400


class ParseError(ProxyError):
    """Raised when a form or multipart body is malformed."""

    status_code = 400


class SizeLimitError(ProxyError):
    """Raised when a multipart body exceeds the configured upload size."""

    status_code = 413

    def __init__(self, message: str, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class TransportError(ProxyError):
    """Raised by the client when the upstream request cannot be sent."""

    status_code = 502


class StreamIOError(ProxyError):
    """Raised when copying a request or response body fails."""

    status_code = 502
