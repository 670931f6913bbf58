"""Forwarding pipeline: options, encoders, renderer and sinks."""

from .api_request import APIRequest
from .encoders import EncodedBody, get_encoder
from .exceptions import (
    DecodeError,
    ParseError,
    ProxyError,
    SizeLimitError,
    StreamIOError,
    TransportError,
)
from .forwarder import build_relative_url, forward
from .multipart import MultipartFormWriter
from .options import (
    DEFAULT_MAX_UPLOAD_SIZE,
    JSONValue,
    ProxyOptions,
    ProxyRequestType,
    build_options,
)
from .renderer import render_response
from .sink import ASGIResponseSink, ResponseSink

__all__ = [
    "APIRequest",
    "ASGIResponseSink",
    "DEFAULT_MAX_UPLOAD_SIZE",
    "DecodeError",
    "EncodedBody",
    "JSONValue",
    "MultipartFormWriter",
    "ParseError",
    "ProxyError",
    "ProxyOptions",
    "ProxyRequestType",
    "ResponseSink",
    "SizeLimitError",
    "StreamIOError",
    "TransportError",
    "build_options",
    "build_relative_url",
    "forward",
    "get_encoder",
    "render_response",
]
