"""Outbound request description consumed by the API client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Union

import httpx

from .options import RequestInterceptor, URLInterceptor

RequestBody = Union[bytes, AsyncIterator[bytes], None]


@dataclass
class APIRequest:
    """A request to send upstream.

    ``path`` is either relative to the client's base URL or an absolute URL.
    URL interceptors run in order on the resolved URL; request interceptors
    run in order on the built ``httpx.Request`` just before it is sent.
    """

    method: str
    path: str
    body: RequestBody = None
    headers: list[tuple[str, str]] = field(default_factory=list)
    timeout: Optional[float] = None
    url_interceptors: list[URLInterceptor] = field(default_factory=list)
    request_interceptors: list[RequestInterceptor] = field(default_factory=list)

    def build_url(self, base_url: str) -> httpx.URL:
        """Resolve ``path`` against ``base_url`` and run URL interceptors."""
        url = httpx.URL(self.path)
        if not url.is_absolute_url:
            base = base_url.rstrip("/")
            path = self.path if self.path.startswith("/") else f"/{self.path}"
            url = httpx.URL(f"{base}{path}")

        for interceptor in self.url_interceptors:
            url = interceptor(url)
        return url
