"""Request encoders: turn an inbound request into an outbound body.

Each encoder either returns a fully prepared ``EncodedBody`` or raises; the
forwarder never sends a partially encoded body.
"""

from __future__ import annotations

import logging
import re
from operator import itemgetter
from typing import AsyncIterator, Awaitable, Callable, NamedTuple, Optional, Union
from urllib.parse import urlencode

from starlette.datastructures import FormData, MultiDict, UploadFile
from starlette.formparsers import FormParser, MultiPartException, MultiPartParser
from starlette.requests import ClientDisconnect, Request

from .exceptions import ParseError, SizeLimitError, StreamIOError
from .jsonbody import JSON_CONTENT_TYPE, decode_json, encode_json
from .multipart import MultipartFormWriter
from .options import ProxyOptions, ProxyRequestType

logger = logging.getLogger("apiproxy")

DEFAULT_RAW_CONTENT_TYPE = "application/octet-stream"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"

# Upper bound for url-encoded bodies
MAX_FORM_BODY_SIZE = 10 << 20
FORM_BODY_METHODS = {"POST", "PUT", "PATCH"}

_INVALID_PERCENT_ESCAPE = re.compile(rb"%(?![0-9A-Fa-f]{2})")

BodyContent = Union[bytes, AsyncIterator[bytes], None]


class EncodedBody(NamedTuple):
    content: BodyContent
    content_type: str


Encoder = Callable[[Request, ProxyOptions], Awaitable[EncodedBody]]


def _media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


async def _replay(body: bytes) -> AsyncIterator[bytes]:
    yield body


async def _passthrough(request: Request) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.stream():
            yield chunk
    except ClientDisconnect as exc:
        raise StreamIOError("client disconnected while streaming request body") from exc


async def read_limited_body(
    request: Request,
    limit: int,
    on_exceeded: Callable[[int], Exception],
) -> bytes:
    """Read the inbound body, failing as soon as it grows past ``limit``.

    A declared Content-Length above the limit fails before anything is read.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.strip().isdigit() and int(declared) > limit:
        raise on_exceeded(limit)

    chunks: list[bytes] = []
    total = 0
    try:
        async for chunk in request.stream():
            total += len(chunk)
            if total > limit:
                raise on_exceeded(limit)
            chunks.append(chunk)
    except ClientDisconnect as exc:
        raise StreamIOError("client disconnected while reading request body") from exc
    return b"".join(chunks)


async def encode_none(request: Request, options: ProxyOptions) -> EncodedBody:
    """No body, no content type."""
    return EncodedBody(None, "")


async def encode_raw(request: Request, options: ProxyOptions) -> EncodedBody:
    """Pass the body through untouched, or rewrite it as JSON when intercepted."""
    if options.request_json_interceptor is not None:
        try:
            body = await request.body()
        except ClientDisconnect as exc:
            raise StreamIOError("client disconnected while reading request body") from exc
        value = decode_json(body, "request body")
        value = options.request_json_interceptor(value)
        return EncodedBody(encode_json(value), JSON_CONTENT_TYPE)

    content_type = request.headers.get("content-type") or DEFAULT_RAW_CONTENT_TYPE
    return EncodedBody(_passthrough(request), content_type)


async def parse_form(request: Request) -> MultiDict:
    """Parse a url-encoded request body into a fresh multi-value mapping.

    Only POST, PUT and PATCH requests with a url-encoded media type carry a
    form body; anything else yields an empty mapping.
    """
    form = MultiDict()
    if request.method.upper() not in FORM_BODY_METHODS:
        return form
    if _media_type(request.headers.get("content-type")) != FORM_CONTENT_TYPE:
        return form

    body = await read_limited_body(
        request,
        MAX_FORM_BODY_SIZE,
        lambda limit: ParseError(f"form body exceeds {limit} bytes"),
    )
    match = _INVALID_PERCENT_ESCAPE.search(body)
    if match is not None:
        raise ParseError(f"invalid percent escape in form body at offset {match.start()}")

    try:
        parsed = await FormParser(request.headers, _replay(body)).parse()
    except (MultiPartException, ValueError) as exc:
        raise ParseError(f"malformed form body: {exc}") from exc

    for key, value in parsed.multi_items():
        form.append(key, value)
    return form


def encode_form_values(form: MultiDict) -> str:
    """Url-encode ``form`` with keys sorted; values keep their order per key."""
    return urlencode(sorted(form.multi_items(), key=itemgetter(0)))


async def encode_form(request: Request, options: ProxyOptions) -> EncodedBody:
    form = await parse_form(request)

    if options.request_form_interceptor is not None:
        form = options.request_form_interceptor(form)

    content_type = request.headers.get("content-type") or FORM_CONTENT_TYPE
    return EncodedBody(encode_form_values(form).encode("ascii"), content_type)


async def parse_multipart_form(request: Request, max_upload_size: int) -> FormData:
    """Parse a multipart body after enforcing ``max_upload_size``."""
    content_type = request.headers.get("content-type", "")
    if _media_type(content_type) != MULTIPART_CONTENT_TYPE:
        raise ParseError(f"request Content-Type isn't {MULTIPART_CONTENT_TYPE}")
    if "boundary=" not in content_type.lower():
        raise ParseError("multipart Content-Type has no boundary")

    body = await read_limited_body(
        request,
        max_upload_size,
        lambda limit: SizeLimitError(f"multipart body exceeds {limit} bytes", limit),
    )
    # max_upload_size already bounds the whole body
    parser = MultiPartParser(
        request.headers,
        _replay(body),
        max_files=max_upload_size,
        max_fields=max_upload_size,
        max_part_size=max_upload_size,
    )
    try:
        return await parser.parse()
    except (MultiPartException, ValueError, KeyError) as exc:
        raise ParseError(f"malformed multipart body: {exc}") from exc


async def encode_multipart_form(request: Request, options: ProxyOptions) -> EncodedBody:
    form = await parse_multipart_form(request, options.upload_limit)
    writer = MultipartFormWriter()

    try:
        items = form.multi_items()
        for key, value in items:
            if not isinstance(value, UploadFile):
                writer.write_field(key, value)

        for key, value in items:
            if not isinstance(value, UploadFile):
                continue
            try:
                copied = await writer.copy_file(
                    key, value.filename or "", value, value.content_type
                )
            except OSError as exc:
                raise StreamIOError(f"failed to copy upload '{key}': {exc}") from exc
            finally:
                await value.close()
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Copied upload %s (%s): %d bytes", key, value.filename, copied)
    finally:
        await form.close()

    if options.request_multipart_form_interceptor is not None:
        options.request_multipart_form_interceptor(writer)

    writer.close()
    return EncodedBody(writer.getvalue(), writer.content_type)


ENCODERS: dict[ProxyRequestType, Encoder] = {
    ProxyRequestType.NONE: encode_none,
    ProxyRequestType.RAW: encode_raw,
    ProxyRequestType.FORM: encode_form,
    ProxyRequestType.MULTIPART_FORM: encode_multipart_form,
}


def get_encoder(request_type: ProxyRequestType | str) -> Encoder:
    """Return the encoder for ``request_type``; unknown types encode no body."""
    return ENCODERS[ProxyRequestType.parse(request_type)]
