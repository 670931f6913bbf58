"""Starlette response that runs a forwarding call when it is sent."""

from __future__ import annotations

import logging
from typing import Any

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from .client import APIClient
from .core.exceptions import ProxyError
from .core.options import ProxyOptions, ProxyRequestType
from .core.sink import ASGIResponseSink

logger = logging.getLogger("apiproxy")


class ProxyResponse(Response):
    """Return this from a route to forward the route's request upstream.

    Errors raised before the status line is committed are answered with
    ``exc.status_code`` and a plain-text message. Once the status has been
    sent the error can only be logged and re-raised; the client sees a
    truncated body.

    Usage:
        @app.api_route("/orders/{rest:path}", methods=["GET", "POST"])
        async def orders(request: Request):
            return ProxyResponse(client, request, request_type=ProxyRequestType.RAW)
    """

    def __init__(
        self,
        client: APIClient,
        request: Request,
        *,
        method: str = "",
        path: str = "",
        request_type: ProxyRequestType | str = ProxyRequestType.NONE,
        options: tuple[ProxyOptions, ...] = (),
        **overrides: Any,
    ) -> None:
        self.client = client
        self.request = request
        self.method = method
        self.path = path
        self.request_type = request_type
        self.options = options
        self.overrides = overrides
        self.status_code = 200
        self.raw_headers = []
        self.background = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = ASGIResponseSink(send)
        try:
            await self.client.proxy_api(
                self.method,
                self.path,
                self.request,
                sink,
                self.request_type,
                *self.options,
                **self.overrides,
            )
        except ProxyError as exc:
            if sink.committed:
                logger.warning(
                    "Forwarding %s %s failed after status %s was sent: %s",
                    self.request.method,
                    self.request.url.path,
                    sink.status_code,
                    exc.message,
                )
                raise
            logger.warning(
                "Forwarding %s %s failed (%s): %s",
                self.request.method,
                self.request.url.path,
                type(exc).__name__,
                exc.message,
            )
            error_response = PlainTextResponse(exc.message, status_code=exc.status_code)
            await error_response(scope, receive, send)
            return

        await sink.finish()
        if self.background is not None:
            await self.background()
