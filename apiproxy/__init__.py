"""apiproxy - request forwarding for API clients

Forwards an inbound Starlette/FastAPI request to an upstream API, reshaping
the body according to a request type and streaming or rewriting the upstream
response back to the caller.

This module provides:
- APIClient: httpx-backed client with the ``proxy_*`` forwarding entry points
- ProxyOptions: per-call interceptors and limits
- ProxyResponse: run a forwarding call from a route handler

Example:
    >>> from apiproxy import APIClient, ProxyResponse, ProxyRequestType
    >>> client = APIClient("https://api.example.com", timeout=30)
    >>> @app.post("/orders")
    ... async def orders(request: Request):
    ...     return ProxyResponse(client, request, request_type=ProxyRequestType.RAW)
"""

from .client import APIClient
from .config_loader import load_config
from .core import (
    APIRequest,
    ASGIResponseSink,
    DecodeError,
    MultipartFormWriter,
    ParseError,
    ProxyError,
    ProxyOptions,
    ProxyRequestType,
    ResponseSink,
    SizeLimitError,
    StreamIOError,
    TransportError,
)
from .logging import setup_logging
from .responses import ProxyResponse

__all__ = [
    "APIClient",
    "APIRequest",
    "ASGIResponseSink",
    "DecodeError",
    "MultipartFormWriter",
    "ParseError",
    "ProxyError",
    "ProxyOptions",
    "ProxyRequestType",
    "ProxyResponse",
    "ResponseSink",
    "SizeLimitError",
    "StreamIOError",
    "TransportError",
    "load_config",
    "setup_logging",
]
