"""JSON body decoding and encoding shared by encoders and the renderer."""

from __future__ import annotations

import json

from .exceptions import DecodeError
from .options import JSONValue

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

_DECODER = json.JSONDecoder()
_WHITESPACE = " \t\r\n"


def decode_json(data: bytes, what: str = "body") -> JSONValue:
    """Decode exactly one JSON value from ``data``.

    Leading whitespace is skipped and anything after the first complete
    value is ignored. Empty or malformed input raises DecodeError.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"{what} is not valid UTF-8: {exc}") from exc

    text = text.lstrip(_WHITESPACE)
    if not text:
        raise DecodeError(f"{what} is empty; expected a JSON value")
    try:
        value, _ = _DECODER.raw_decode(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"{what} is not valid JSON: {exc}") from exc
    return value


def encode_json(value: JSONValue) -> bytes:
    """Encode ``value`` compactly, newline terminated."""
    try:
        text = json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"intercepted value is not JSON serializable: {exc}") from exc
    return (text + "\n").encode("utf-8")
