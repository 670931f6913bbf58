"""API client: sends upstream requests and exposes the proxy entry points."""

from __future__ import annotations

import logging
import os
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Mapping, Optional

import httpx
from starlette.requests import Request

from .core.api_request import APIRequest
from .core.exceptions import TransportError
from .core.forwarder import forward
from .core.options import ProxyOptions, ProxyRequestType, build_options
from .core.sink import ResponseSink
from .core.upstream_transport import get_upstream_transport

logger = logging.getLogger("apiproxy")

DEFAULT_TIMEOUT = 60.0


def format_transport_error(exc: httpx.RequestError, url: Any, timeout: Optional[float]) -> str:
    """Produce a detailed description of an httpx transport error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except RuntimeError:
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    else:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def _discarding_cookie_jar() -> CookieJar:
    """Jar that stores nothing; cookies belong to the inbound caller."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class APIClient:
    """Client for one upstream API.

    ``timeout`` (seconds, ``None`` for no limit) is the default for every
    request and for forwarding calls. ``proxy_options`` are client-wide
    forwarding defaults that per-call options override.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
        proxy_options: Optional[ProxyOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.proxy_options = proxy_options or ProxyOptions()
        self._transport = transport
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs: Any) -> "APIClient":
        """Build a client from a loaded config (see ``config_loader``).

        ``APIPROXY_BASE_URL`` and ``APIPROXY_TIMEOUT`` override the file.
        """
        settings = config.get("client_settings") or {}
        base_url = os.getenv("APIPROXY_BASE_URL") or str(settings.get("base_url") or "")

        timeout = _to_float(settings.get("timeout_seconds"))
        timeout_env = os.getenv("APIPROXY_TIMEOUT")
        if timeout_env is not None:
            try:
                timeout = float(timeout_env)
            except ValueError:
                logger.warning("Invalid APIPROXY_TIMEOUT=%s", timeout_env)
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        elif timeout <= 0:
            timeout = None

        headers = settings.get("headers") or {}
        if not isinstance(headers, Mapping):
            logger.warning("Ignoring client_settings.headers: expected a mapping")
            headers = {}

        kwargs.setdefault("proxy_options", ProxyOptions.from_config(config))
        return cls(
            base_url,
            timeout=timeout,
            headers={str(k): str(v) for k, v in headers.items()},
            **kwargs,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            transport = self._transport or get_upstream_transport(self.base_url)
            self._http_client = httpx.AsyncClient(
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                transport=transport,
                cookies=_discarding_cookie_jar(),
                follow_redirects=False,
            )
        return self._http_client

    def default_options(self) -> ProxyOptions:
        """Base options for a forwarding call: client timeout, then client defaults."""
        return build_options(ProxyOptions(request_timeout=self.timeout), self.proxy_options)

    async def do_api_request(self, api_request: APIRequest) -> httpx.Response:
        """Send ``api_request`` and return the streamed response.

        The caller owns the response and must ``aclose()`` it.
        Transport failures raise TransportError.
        """
        url = api_request.build_url(self.base_url)
        timeout = api_request.timeout if api_request.timeout is not None else self.timeout
        client = self.http_client

        http_request = client.build_request(
            api_request.method,
            url,
            content=api_request.body,
            headers=api_request.headers,
            timeout=httpx.Timeout(timeout),
        )
        for interceptor in api_request.request_interceptors:
            interceptor(http_request)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Sending upstream request %s %s", http_request.method, http_request.url)

        try:
            return await client.send(http_request, stream=True)
        except httpx.RequestError as exc:
            raise TransportError(format_transport_error(exc, url, timeout)) from exc

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Forwarding entry points
    # -------------------------------------------------------------------------

    async def proxy_api(
        self,
        method: str,
        path: str,
        request: Request,
        sink: ResponseSink,
        request_type: ProxyRequestType | str = ProxyRequestType.NONE,
        *options: ProxyOptions,
        **overrides: Any,
    ) -> None:
        """Forward ``request`` upstream and write the response into ``sink``.

        Empty ``method`` or ``path`` fall back to the inbound request's.
        """
        await forward(self, method, path, request, sink, request_type, *options, **overrides)

    async def proxy_json_api(
        self, method: str, path: str, request: Request, sink: ResponseSink,
        *options: ProxyOptions, **overrides: Any,
    ) -> None:
        await self.proxy_api(
            method, path, request, sink, ProxyRequestType.RAW, *options, **overrides
        )

    async def transparent_proxy_json_api(self, request: Request, sink: ResponseSink) -> None:
        await self.proxy_json_api("", "", request, sink)

    async def proxy_form_api(
        self, method: str, path: str, request: Request, sink: ResponseSink,
        *options: ProxyOptions, **overrides: Any,
    ) -> None:
        await self.proxy_api(
            method, path, request, sink, ProxyRequestType.FORM, *options, **overrides
        )

    async def transparent_proxy_form_api(self, request: Request, sink: ResponseSink) -> None:
        await self.proxy_form_api("", "", request, sink)

    async def proxy_multipart_form_api(
        self, method: str, path: str, request: Request, sink: ResponseSink,
        *options: ProxyOptions, **overrides: Any,
    ) -> None:
        await self.proxy_api(
            method, path, request, sink, ProxyRequestType.MULTIPART_FORM, *options, **overrides
        )

    async def transparent_proxy_multipart_form_api(
        self, request: Request, sink: ResponseSink
    ) -> None:
        await self.proxy_multipart_form_api("", "", request, sink)
