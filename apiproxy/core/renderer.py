"""Writes an upstream response to a response sink."""

from __future__ import annotations

import gzip
import logging
import zlib

import httpx

from .exceptions import DecodeError, StreamIOError
from .jsonbody import JSON_CONTENT_TYPE, decode_json, encode_json
from .options import ProxyOptions
from .sink import ResponseSink

logger = logging.getLogger("apiproxy")


def transfer_response_headers(
    upstream_headers: httpx.Headers,
    sink: ResponseSink,
    allow_list: tuple[str, ...],
) -> None:
    """Append every value of each allow-listed upstream header to the sink."""
    if not allow_list:
        return
    allowed = {name.lower() for name in allow_list}
    for name, value in upstream_headers.multi_items():
        if name.lower() in allowed:
            sink.headers.append(name, value)


async def _read_raw_body(response: httpx.Response) -> bytes:
    chunks: list[bytes] = []
    try:
        async for chunk in response.aiter_raw():
            chunks.append(chunk)
    except httpx.HTTPError as exc:
        raise StreamIOError(f"failed to read upstream response body: {exc}") from exc
    return b"".join(chunks)


async def _intercept_json_body(response: httpx.Response, options: ProxyOptions) -> bytes:
    body = await _read_raw_body(response)

    if response.headers.get("content-encoding") == "gzip":
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecodeError(
                f"upstream response is not valid gzip: {exc}", status_code=502
            ) from exc

    try:
        value = decode_json(body, "upstream response body")
    except DecodeError as exc:
        # a bad upstream body is a gateway failure, not a client error
        raise DecodeError(exc.message, status_code=502) from exc
    value = options.response_json_interceptor(value)
    return encode_json(value)


async def render_response(
    response: httpx.Response,
    sink: ResponseSink,
    options: ProxyOptions,
) -> None:
    """Transfer headers, commit the status and write the body.

    With a response JSON interceptor the body is decoded, rewritten and
    re-encoded before the status is committed, so decode failures still
    leave the sink untouched. Without one the upstream bytes are streamed
    as-is after the commit; errors from that point on carry
    ``committed=True`` because the client has already seen the status.
    """
    transfer_response_headers(response.headers, sink, options.response_header_allow_list)

    if options.response_json_interceptor is not None:
        payload = await _intercept_json_body(response, options)

        sink.headers["Content-Type"] = JSON_CONTENT_TYPE
        sink.headers["Content-Length"] = str(len(payload))
        del sink.headers["Content-Encoding"]

        await sink.write_header(response.status_code)
        try:
            await sink.write(payload)
        except OSError as exc:
            raise StreamIOError(f"failed to write response: {exc}", committed=True) from exc
        return

    sink.headers["Content-Type"] = response.headers.get("content-type", "")

    content_length = response.headers.get("content-length")
    if content_length:
        sink.headers["Content-Length"] = content_length

    content_encoding = response.headers.get("content-encoding")
    if content_encoding:
        sink.headers["Content-Encoding"] = content_encoding

    await sink.write_header(response.status_code)

    copied = 0
    try:
        async for chunk in response.aiter_raw():
            await sink.write(chunk)
            copied += len(chunk)
    except (httpx.HTTPError, OSError) as exc:
        raise StreamIOError(
            f"response stream interrupted after {copied} bytes: {exc}",
            committed=True,
        ) from exc

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Streamed upstream response: status=%s, %d bytes",
            response.status_code,
            copied,
        )
