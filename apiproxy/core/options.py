"""Per-call forwarding options and interceptor hook types."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional, Union

import httpx
from starlette.datastructures import MultiDict

if TYPE_CHECKING:
    from .multipart import MultipartFormWriter

DEFAULT_MAX_UPLOAD_SIZE = 32 << 20

JSONValue = Union[dict[str, Any], list[Any], str, int, float, bool, None]

URLInterceptor = Callable[[httpx.URL], httpx.URL]
RequestInterceptor = Callable[[httpx.Request], None]
JSONInterceptor = Callable[[JSONValue], JSONValue]
FormInterceptor = Callable[[MultiDict], MultiDict]
MultipartFormInterceptor = Callable[["MultipartFormWriter"], None]


class ProxyRequestType(str, Enum):
    """Selects how the inbound request body is re-encoded."""

    NONE = ""
    RAW = "RAW"
    FORM = "FORM"
    MULTIPART_FORM = "MULTIPART_FORM"

    @classmethod
    def parse(cls, value: Any) -> "ProxyRequestType":
        """Map a raw value onto a request type; unknown values mean NONE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


@dataclass
class ProxyOptions:
    """Configuration for a single forwarding call.

    Fields left as ``None`` are unset and do not override earlier options
    when folded with :func:`build_options`.
    """

    request_timeout: Optional[float] = None
    max_upload_size: Optional[int] = None
    transfer_response_headers: Optional[tuple[str, ...]] = None
    url_interceptor: Optional[URLInterceptor] = None
    request_interceptor: Optional[RequestInterceptor] = None
    request_json_interceptor: Optional[JSONInterceptor] = None
    request_form_interceptor: Optional[FormInterceptor] = None
    request_multipart_form_interceptor: Optional[MultipartFormInterceptor] = None
    response_json_interceptor: Optional[JSONInterceptor] = None

    def __post_init__(self) -> None:
        if self.transfer_response_headers is not None and not isinstance(
            self.transfer_response_headers, tuple
        ):
            self.transfer_response_headers = _as_header_names(self.transfer_response_headers)

    @property
    def upload_limit(self) -> int:
        if self.max_upload_size is None:
            return DEFAULT_MAX_UPLOAD_SIZE
        return self.max_upload_size

    @property
    def response_header_allow_list(self) -> tuple[str, ...]:
        return self.transfer_response_headers or ()

    def set_fields(self) -> dict[str, Any]:
        """Return the explicitly set fields of these options."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ProxyOptions":
        """Build options from a ``proxy_settings`` mapping (or a full config)."""
        settings = config.get("proxy_settings", config) if config else {}
        if not isinstance(settings, Mapping):
            settings = {}

        headers = settings.get("transfer_response_headers")
        return cls(
            request_timeout=_to_float(settings.get("request_timeout_seconds")),
            max_upload_size=_to_int(settings.get("max_upload_size")),
            transfer_response_headers=_as_header_names(headers) if headers else None,
        )


def build_options(
    base: ProxyOptions,
    *options: ProxyOptions,
    **overrides: Any,
) -> ProxyOptions:
    """Fold ``options`` over ``base``; later values win, ``overrides`` last.

    A fresh ``ProxyOptions`` is returned; ``base`` is never mutated.
    """
    resolved = dataclasses.replace(base)
    for option in options:
        if option is None:
            continue
        resolved = dataclasses.replace(resolved, **option.set_fields())
    if overrides:
        resolved = dataclasses.replace(resolved, **overrides)
    return resolved


def _as_header_names(value: Iterable[str] | str) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    return tuple(str(name).strip() for name in value if str(name).strip())


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
