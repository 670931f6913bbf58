"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import AsyncIterator, Generator

import httpx
import pytest
from starlette.datastructures import FormData, Headers
from starlette.formparsers import MultiPartParser

UPSTREAM_URL = "http://upstream.local"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    from apiproxy.core.upstream_transport import clear_upstream_transports

    clear_upstream_transports()
    yield
    clear_upstream_transports()


@pytest.fixture
def upstream(clear_transport_registry: None):
    """A FakeUpstream served for ``UPSTREAM_URL``.

    Usage:
        async def test_forward(upstream):
            upstream.enqueue_json({"ok": True})
            async with APIClient(UPSTREAM_URL) as client:
                ...
    """
    from apiproxy.core.upstream_transport import mount_asgi_upstream
    from apiproxy.testing import FakeUpstream

    fake = FakeUpstream()
    mount_asgi_upstream(UPSTREAM_URL, fake.app)
    return fake


# =============================================================================
# Helper Functions for Tests
# =============================================================================


def build_multipart_body(
    data: dict[str, str | list[str]],
    files: list[tuple[str, tuple[str, bytes, str]]],
) -> tuple[bytes, str]:
    """Encode a multipart body with httpx; returns (body, content_type).

    httpx url-encodes when there are no files, so fields-only bodies are
    written by hand.
    """
    if files:
        request = httpx.Request("POST", "http://client.local/upload", data=data, files=files)
        return request.read(), request.headers["content-type"]

    boundary = "fields-only-boundary"
    parts = []
    for name, values in data.items():
        for value in values if isinstance(values, list) else [values]:
            parts.append(
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            )
    body = "".join(parts) + f"--{boundary}--\r\n"
    return body.encode("utf-8"), f"multipart/form-data; boundary={boundary}"


async def _replay(body: bytes) -> AsyncIterator[bytes]:
    yield body


async def parse_multipart_body(body: bytes, content_type: str) -> FormData:
    """Parse a multipart body the way an upstream server would."""
    headers = Headers({"content-type": content_type})
    parser = MultiPartParser(headers, _replay(body), max_part_size=len(body) or 1)
    return await parser.parse()


def mock_client(handler, **kwargs):
    """APIClient whose transport is an ``httpx.MockTransport``."""
    from apiproxy import APIClient

    return APIClient(UPSTREAM_URL, transport=httpx.MockTransport(handler), **kwargs)
