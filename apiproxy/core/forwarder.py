"""Forwarding pipeline: inbound request -> encoder -> upstream -> sink."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlunsplit

from starlette.requests import Request

from .api_request import APIRequest
from .encoders import get_encoder
from .options import ProxyOptions, ProxyRequestType, build_options
from .renderer import render_response
from .sink import ResponseSink

if TYPE_CHECKING:
    from ..client import APIClient

logger = logging.getLogger("apiproxy")

# Framing headers httpx recomputes for the outbound body
TRANSPORT_MANAGED_HEADERS = {"host", "content-length", "transfer-encoding"}

_PATH_SAFE = "/:@$&+,;="


def build_relative_url(path: str, query: str = "", fragment: str = "") -> str:
    """Rebuild ``path?query#fragment``; empty parts leave no separator."""
    return urlunsplit(("", "", quote(path, safe=_PATH_SAFE), query, fragment))


def build_outbound_headers(request: Request, content_type: str) -> list[tuple[str, str]]:
    """Copy every inbound header value, then apply the encoder's content type."""
    headers = [
        (name, value)
        for name, value in request.headers.items()
        if name.lower() not in TRANSPORT_MANAGED_HEADERS
    ]
    if content_type:
        headers = [(name, value) for name, value in headers if name.lower() != "content-type"]
        headers.append(("Content-Type", content_type))
    return headers


async def forward(
    client: "APIClient",
    method: str,
    path: str,
    request: Request,
    sink: ResponseSink,
    request_type: ProxyRequestType | str = ProxyRequestType.NONE,
    *options: ProxyOptions,
    **overrides: Any,
) -> None:
    """Forward ``request`` upstream through ``client`` and render into ``sink``.

    Empty ``method``/``path`` are taken from the inbound request. Errors
    propagate to the caller; see ``ProxyError.committed`` for whether the
    sink had already sent its status line.
    """
    if not path:
        path = build_relative_url(request.url.path, request.url.query, request.url.fragment)
    if not method:
        method = request.method

    opts = build_options(client.default_options(), *options, **overrides)

    encoder = get_encoder(request_type)
    body, content_type = await encoder(request, opts)

    api_request = APIRequest(
        method=method,
        path=path,
        body=body,
        headers=build_outbound_headers(request, content_type),
        timeout=opts.request_timeout,
    )
    if opts.url_interceptor is not None:
        api_request.url_interceptors.append(opts.url_interceptor)
    if opts.request_interceptor is not None:
        api_request.request_interceptors.append(opts.request_interceptor)

    start_time = time.perf_counter()
    response = await client.do_api_request(api_request)
    try:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Upstream responded to %s %s: status=%s in %.3fs",
                method,
                path,
                response.status_code,
                time.perf_counter() - start_time,
            )
        await render_response(response, sink, opts)
    finally:
        await response.aclose()
