"""Response sinks: where a forwarding call writes its status, headers and body."""

from __future__ import annotations

import logging
from typing import Optional

from starlette.datastructures import MutableHeaders
from starlette.types import Send

logger = logging.getLogger("apiproxy")


class ResponseSink:
    """Outbound response under construction.

    Headers may be changed until ``write_header`` commits the status line.
    Body bytes may only be written after that.
    """

    def __init__(self) -> None:
        self.headers = MutableHeaders()
        self.status_code: Optional[int] = None

    @property
    def committed(self) -> bool:
        return self.status_code is not None

    async def write_header(self, status_code: int) -> None:
        if self.committed:
            logger.warning(
                "Ignoring superfluous write_header(%s); status %s already sent",
                status_code,
                self.status_code,
            )
            return
        self.status_code = status_code
        await self._commit()

    async def write(self, data: bytes) -> None:
        if not self.committed:
            await self.write_header(200)
        if data:
            await self._write_body(data)

    async def _commit(self) -> None:
        raise NotImplementedError

    async def _write_body(self, data: bytes) -> None:
        raise NotImplementedError


class ASGIResponseSink(ResponseSink):
    """Sink that emits ASGI ``http.response.*`` messages through ``send``."""

    def __init__(self, send: Send) -> None:
        super().__init__()
        self._send = send
        self._finished = False

    async def _commit(self) -> None:
        await self._send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.headers.raw,
            }
        )

    async def _write_body(self, data: bytes) -> None:
        await self._send({"type": "http.response.body", "body": data, "more_body": True})

    async def finish(self) -> None:
        """Terminate the response body; commits a 200 if nothing was sent."""
        if self._finished:
            return
        if not self.committed:
            await self.write_header(200)
        await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        self._finished = True
