"""Per-host httpx transports for upstreams served in-process.

``APIClient`` consults this registry when it creates its ``httpx.AsyncClient``
so that tests and embedded deployments can route a base URL to an ASGI app
instead of the network.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx
from starlette.types import ASGIApp

logger = logging.getLogger("apiproxy")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_key(host_or_url: str) -> str:
    value = host_or_url.strip()
    if "://" in value:
        value = urlparse(value).netloc
    return value.lower()


def register_upstream_transport(host_or_url: str, transport: httpx.AsyncBaseTransport) -> str:
    """Route requests for a host (``'api.local:8000'`` or a URL) to ``transport``."""
    key = _host_key(host_or_url or "")
    if not key:
        raise ValueError("host is required")
    _TRANSPORTS[key] = transport
    logger.debug("Registered upstream transport for host '%s'", key)
    return key


def mount_asgi_upstream(host_or_url: str, app: ASGIApp) -> httpx.ASGITransport:
    """Serve ``host_or_url`` from an ASGI application."""
    transport = httpx.ASGITransport(app=app)
    register_upstream_transport(host_or_url, transport)
    return transport


def unregister_upstream_transport(host_or_url: str) -> None:
    if not host_or_url:
        return
    _TRANSPORTS.pop(_host_key(host_or_url), None)


def clear_upstream_transports() -> None:
    """Forget every registration (tests)."""
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return the transport registered for the URL's host, if any."""
    if not url:
        return None
    key = _host_key(url)
    if not key:
        return None
    return _TRANSPORTS.get(key)
