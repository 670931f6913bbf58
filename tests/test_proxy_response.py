"""Tests for ProxyResponse mounted in a FastAPI app."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import pytest
from conftest import UPSTREAM_URL, build_multipart_body
from fastapi import FastAPI, Request

from apiproxy import APIClient, ProxyRequestType, ProxyResponse, StreamIOError
from apiproxy.testing import UpstreamResponse


def _build_app(client: APIClient) -> FastAPI:
    app = FastAPI()

    @app.get("/orders")
    async def orders(request: Request):
        return ProxyResponse(client, request, path="/v1/orders", transfer_response_headers=("ETag",))

    @app.post("/orders")
    async def create_order(request: Request):
        def stamp(value):
            value["source"] = "gateway"
            return value

        return ProxyResponse(
            client,
            request,
            path="/v1/orders",
            request_type=ProxyRequestType.RAW,
            request_json_interceptor=stamp,
        )

    @app.post("/uploads")
    async def uploads(request: Request):
        return ProxyResponse(
            client, request, request_type=ProxyRequestType.MULTIPART_FORM, max_upload_size=128
        )

    @app.api_route("/passthrough/{path:path}", methods=["GET", "POST"])
    async def passthrough(path: str, request: Request):
        return ProxyResponse(client, request, request_type=ProxyRequestType.RAW)

    return app


@asynccontextmanager
async def _app_client(app: FastAPI):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://gateway.local",
    ) as client:
        yield client


@pytest.mark.asyncio
async def test_get_is_forwarded_to_mapped_path(upstream):
    upstream.enqueue_json({"orders": [{"id": 1}]}, headers=[("ETag", '"abc"'), ("X-Internal", "1")])

    async with APIClient(UPSTREAM_URL) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.get("/orders")

    assert response.status_code == 200
    assert response.json() == {"orders": [{"id": 1}]}
    assert response.headers["etag"] == '"abc"'
    assert "x-internal" not in response.headers
    assert upstream.last_request.target == "/v1/orders"


@pytest.mark.asyncio
async def test_json_body_is_rewritten_before_forwarding(upstream):
    upstream.enqueue(UpstreamResponse(status_code=201, body=b"created", media_type="text/plain"))

    async with APIClient(UPSTREAM_URL) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.post("/orders", json={"item": "book"})

    assert response.status_code == 201
    assert response.text == "created"
    assert upstream.last_request.body == b'{"item":"book","source":"gateway"}\n'


@pytest.mark.asyncio
async def test_inbound_path_and_query_are_kept(upstream):
    async with APIClient(UPSTREAM_URL) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.post(
                "/passthrough/items", params={"dry_run": "1"}, content=b"payload"
            )

    assert upstream.last_request.target == "/passthrough/items?dry_run=1"
    assert response.content == b"payload"


@pytest.mark.asyncio
async def test_malformed_json_is_answered_with_400(upstream):
    async with APIClient(UPSTREAM_URL) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.post(
                "/orders", content=b"{oops", headers={"Content-Type": "application/json"}
            )

    assert response.status_code == 400
    assert "not valid JSON" in response.text
    assert upstream.received == []


@pytest.mark.asyncio
async def test_oversized_upload_is_answered_with_413(upstream):
    body, content_type = build_multipart_body(
        {}, [("file", ("big.bin", b"0" * 512, "application/octet-stream"))]
    )

    async with APIClient(UPSTREAM_URL) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.post(
                "/uploads", content=body, headers={"Content-Type": content_type}
            )

    assert response.status_code == 413
    assert "128" in response.text
    assert upstream.received == []


@pytest.mark.asyncio
async def test_unreachable_upstream_is_answered_with_502():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with APIClient(UPSTREAM_URL, transport=httpx.MockTransport(handler)) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            response = await client.get("/orders")

    assert response.status_code == 502
    assert "ConnectError" in response.text


@pytest.mark.asyncio
async def test_failure_after_commit_is_raised():
    class BrokenStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield b"partial"
            raise httpx.ReadError("upstream went away")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Type": "text/plain"}, stream=BrokenStream())

    async with APIClient(UPSTREAM_URL, transport=httpx.MockTransport(handler)) as api_client:
        async with _app_client(_build_app(api_client)) as client:
            with pytest.raises(StreamIOError) as exc_info:
                await client.get("/orders")

    assert exc_info.value.committed is True
