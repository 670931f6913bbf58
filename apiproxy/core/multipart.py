"""multipart/form-data body writer.

The writer buffers the encoded body in memory. Field and file parts are
emitted in the order they are written; ``close`` appends the terminating
boundary, after which no more parts are accepted.
"""

from __future__ import annotations

import io
import secrets
from typing import Optional, Protocol

COPY_CHUNK_SIZE = 64 * 1024
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


def _escape_quotes(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MultipartFormWriter:
    """Encodes form fields and files as a multipart/form-data body."""

    def __init__(self, boundary: Optional[str] = None) -> None:
        self._boundary = boundary or secrets.token_hex(16)
        self._buffer = io.BytesIO()
        self._part_count = 0
        self._closed = False

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self._boundary}"

    @property
    def closed(self) -> bool:
        return self._closed

    def _begin_part(self, headers: list[tuple[str, str]]) -> None:
        if self._closed:
            raise ValueError("multipart writer is closed")
        if self._part_count:
            self._buffer.write(b"\r\n")
        self._buffer.write(f"--{self._boundary}\r\n".encode("latin-1"))
        for name, value in headers:
            self._buffer.write(f"{name}: {value}\r\n".encode("utf-8"))
        self._buffer.write(b"\r\n")
        self._part_count += 1

    def write_field(self, name: str, value: str) -> None:
        """Write a scalar form field."""
        self._begin_part(
            [("Content-Disposition", f'form-data; name="{_escape_quotes(name)}"')]
        )
        self._buffer.write(value.encode("utf-8"))

    def _begin_file(self, name: str, filename: str, content_type: Optional[str]) -> None:
        disposition = (
            f'form-data; name="{_escape_quotes(name)}"; '
            f'filename="{_escape_quotes(filename)}"'
        )
        self._begin_part(
            [
                ("Content-Disposition", disposition),
                ("Content-Type", content_type or DEFAULT_FILE_CONTENT_TYPE),
            ]
        )

    def write_file(
        self,
        name: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        """Write a file part whose content is already in memory."""
        self._begin_file(name, filename, content_type)
        self._buffer.write(content)

    async def copy_file(
        self,
        name: str,
        filename: str,
        source: AsyncReadable,
        content_type: Optional[str] = None,
    ) -> int:
        """Stream ``source`` into a new file part and return the bytes copied."""
        self._begin_file(name, filename, content_type)
        copied = 0
        while True:
            chunk = await source.read(COPY_CHUNK_SIZE)
            if not chunk:
                break
            self._buffer.write(chunk)
            copied += len(chunk)
        return copied

    def close(self) -> None:
        """Write the closing boundary. Calling it twice is a no-op."""
        if self._closed:
            return
        if self._part_count:
            self._buffer.write(b"\r\n")
        self._buffer.write(f"--{self._boundary}--\r\n".encode("latin-1"))
        self._closed = True

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()
