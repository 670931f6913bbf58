"""Transparent HTTP forwarder built on the forwarding pipeline.

Every inbound request is forwarded to ``target_base_url`` with its own
method, path and query. The body encoding is chosen from the inbound
media type.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

import httpx
from fastapi import FastAPI, Request

from .client import DEFAULT_TIMEOUT, APIClient
from .config_loader import load_config
from .core.encoders import FORM_BODY_METHODS, FORM_CONTENT_TYPE, MULTIPART_CONTENT_TYPE
from .core.options import ProxyOptions, ProxyRequestType
from .logging.setup import setup_logging
from .responses import ProxyResponse

logger = logging.getLogger("apiproxy.http_forwarder")

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "proxy-connection",
}

DEFAULT_TRANSFER_RESPONSE_HEADERS = (
    "Cache-Control",
    "ETag",
    "Last-Modified",
    "Location",
    "Set-Cookie",
)


@dataclass(frozen=True)
class ForwarderSettings:
    listen_host: str
    listen_port: int
    target_base_url: str
    preserve_host: bool
    timeout_seconds: Optional[float]
    transfer_response_headers: tuple[str, ...] = field(
        default=DEFAULT_TRANSFER_RESPONSE_HEADERS
    )
    max_upload_size: Optional[int] = None
    debug: bool = False


def _get(cfg: dict, *keys: str):
    cur = cfg
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return None


def load_settings(cfg: Optional[dict] = None) -> ForwarderSettings:
    """Resolve settings from config, then ``HTTP_FORWARD_*`` env overrides."""
    if cfg is None:
        try:
            cfg = load_config()
        except RuntimeError as exc:
            logger.warning("Failed to load config; using defaults. (%s)", exc)
            cfg = {}

    http_cfg = _get(cfg, "http_forwarder_settings") or {}
    listen_cfg = http_cfg.get("listen") or {}
    client = APIClient.from_config(cfg)
    proxy_options = client.proxy_options

    listen_host = str(listen_cfg.get("host") or "0.0.0.0")
    listen_port = _to_int(listen_cfg.get("port")) or 6969
    preserve_host = _to_bool(http_cfg.get("preserve_host"))
    if preserve_host is None:
        preserve_host = False
    debug = _to_bool(http_cfg.get("debug")) or False

    # Env overrides
    listen_host = os.getenv("HTTP_FORWARD_LISTEN_HOST", listen_host)
    listen_port = _to_int(os.getenv("HTTP_FORWARD_LISTEN_PORT")) or listen_port
    preserve_env = _to_bool(os.getenv("HTTP_FORWARD_PRESERVE_HOST"))
    if preserve_env is not None:
        preserve_host = preserve_env
    debug_env = _to_bool(os.getenv("HTTP_FORWARD_DEBUG"))
    if debug_env is not None:
        debug = debug_env

    return ForwarderSettings(
        listen_host=listen_host,
        listen_port=listen_port,
        target_base_url=client.base_url,
        preserve_host=preserve_host,
        timeout_seconds=client.timeout,
        transfer_response_headers=(
            proxy_options.transfer_response_headers or DEFAULT_TRANSFER_RESPONSE_HEADERS
        ),
        max_upload_size=proxy_options.max_upload_size,
        debug=debug,
    )


def select_request_type(request: Request) -> ProxyRequestType:
    """Pick the body encoding for an inbound request from its media type."""
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == MULTIPART_CONTENT_TYPE:
        return ProxyRequestType.MULTIPART_FORM
    if media_type == FORM_CONTENT_TYPE and request.method.upper() in FORM_BODY_METHODS:
        return ProxyRequestType.FORM
    has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
    if has_body and request.headers.get("content-length") != "0":
        return ProxyRequestType.RAW
    return ProxyRequestType.NONE


def _connection_header_overrides(headers: httpx.Headers) -> set[str]:
    extra: set[str] = set()
    for value in headers.get_list("connection"):
        for name in value.split(","):
            name = name.strip().lower()
            if name:
                extra.add(name)
    return extra


def strip_hop_by_hop_headers(outbound: httpx.Request) -> None:
    """Request interceptor removing hop-by-hop headers before sending."""
    remove = HOP_BY_HOP_HEADERS | _connection_header_overrides(outbound.headers)
    for name in list(outbound.headers.keys()):
        if name.lower() in remove:
            del outbound.headers[name]


def _preserve_host(host: str):
    def _interceptor(outbound: httpx.Request) -> None:
        strip_hop_by_hop_headers(outbound)
        outbound.headers["Host"] = host

    return _interceptor


def build_forward_options(settings: ForwarderSettings, request: Request) -> ProxyOptions:
    interceptor = strip_hop_by_hop_headers
    inbound_host = request.headers.get("host")
    if settings.preserve_host and inbound_host:
        interceptor = _preserve_host(inbound_host)
    return ProxyOptions(
        request_interceptor=interceptor,
        transfer_response_headers=settings.transfer_response_headers,
        max_upload_size=settings.max_upload_size,
    )


def create_app(settings: Optional[ForwarderSettings] = None, client: Optional[APIClient] = None) -> FastAPI:
    """Create the forwarder app; settings are loaded at startup when omitted."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or load_settings()
        if resolved.debug:
            logger.setLevel(logging.DEBUG)
            logging.getLogger("apiproxy").setLevel(logging.DEBUG)
            logger.debug("Debug mode enabled")

        api_client = client or APIClient(
            resolved.target_base_url,
            timeout=resolved.timeout_seconds,
        )
        app.state.forwarder_settings = resolved
        app.state.forwarder_client = api_client
        logger.info(
            "HTTP forwarder ready: %s:%s -> %s",
            resolved.listen_host,
            resolved.listen_port,
            resolved.target_base_url,
        )
        try:
            yield
        finally:
            await api_client.aclose()

    app = FastAPI(title="apiproxy HTTP Forwarder", lifespan=lifespan)
    app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    )(forward_request)
    return app


async def forward_request(path: str, request: Request) -> ProxyResponse:
    settings: ForwarderSettings = request.app.state.forwarder_settings
    client: APIClient = request.app.state.forwarder_client
    request_type = select_request_type(request)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Forwarding %s /%s as %s to %s",
            request.method,
            path,
            request_type.name,
            settings.target_base_url,
        )

    return ProxyResponse(
        client,
        request,
        request_type=request_type,
        options=(build_forward_options(settings, request),),
    )


def main() -> None:
    import uvicorn

    setup_logging()
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.listen_host,
        port=settings.listen_port,
    )


if __name__ == "__main__":
    main()


__all__ = ["ForwarderSettings", "create_app", "forward_request", "load_settings", "main"]
