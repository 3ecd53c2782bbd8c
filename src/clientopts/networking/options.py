"""Sparse, caller-supplied options for constructing an HTTP client.

Every field defaults to ``None``, meaning "absent": the resolver substitutes
the documented default for it. Where the transport's own default is wanted
instead, pass ``PLATFORM_DEFAULT`` explicitly.
"""

from __future__ import annotations

import enum
import ssl
from dataclasses import dataclass, fields, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:
    import requests
    from requests.adapters import BaseAdapter

    from .customizer import ClientCustomizer


class PlatformDefault:
    """Marker value: defer to the transport's own default."""

    _instance: PlatformDefault | None = None

    def __new__(cls) -> PlatformDefault:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PLATFORM_DEFAULT"

    def __reduce__(self) -> str:
        return "PLATFORM_DEFAULT"


PLATFORM_DEFAULT = PlatformDefault()


class DecompressionMethods(enum.Flag):
    """Content codings the client asks for and transparently decodes."""

    NONE = 0
    GZIP = 1
    DEFLATE = 2
    BROTLI = 4
    ALL = GZIP | DEFLATE | BROTLI


class KeepAlivePingPolicy(enum.Enum):
    """When keep-alive pings are sent on an open connection.

    ``WITH_ACTIVE_REQUESTS`` only probes while a request is in flight.
    """

    ALWAYS = "always"
    WITH_ACTIVE_REQUESTS = "with_active_requests"


class SystemProxy:
    """Marker value: use the proxies configured in the process environment."""

    _instance: SystemProxy | None = None

    def __new__(cls) -> SystemProxy:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SYSTEM_PROXY"

    def __reduce__(self) -> str:
        return "SYSTEM_PROXY"


SYSTEM_PROXY = SystemProxy()


@dataclass(frozen=True)
class ProxySettings:
    """An explicit proxy used for both http and https requests."""

    url: str

    def as_requests_proxies(self) -> dict[str, str]:
        """Return the ``proxies`` mapping requests expects for both schemes."""
        return {"http": self.url, "https": self.url}


@dataclass(frozen=True)
class HttpClientOptions:
    """Options for building an HTTP client. ``None`` means absent."""

    pooled_connection_lifetime_seconds: float | None = None
    use_cookie_container: bool | None = None
    max_connections_per_server: int | None = None
    timeout_seconds: float | None = None
    connect_timeout_seconds: float | PlatformDefault | None = None
    default_request_headers: Mapping[str, str] | None = None
    modify_client: (
        ClientCustomizer | Callable[[requests.Session], Any] | None
    ) = None
    base_address: str | None = None
    transport_adapter: BaseAdapter | None = None
    response_drain_timeout_seconds: float | None = None
    allow_auto_redirect: bool | None = None
    automatic_decompression: DecompressionMethods | None = None
    keep_alive_ping_delay_seconds: float | None = None
    keep_alive_ping_timeout_seconds: float | None = None
    keep_alive_ping_policy: KeepAlivePingPolicy | None = None
    use_proxy: bool | None = None
    proxy: ProxySettings | SystemProxy | None = None
    max_response_drain_size: int | None = None
    max_response_headers_length: int | None = None
    ssl_options: ssl.SSLContext | PlatformDefault | None = None

    def __post_init__(self) -> None:
        if self.default_request_headers is not None:
            # Freeze copied headers to avoid post-init mutation side effects.
            object.__setattr__(
                self,
                "default_request_headers",
                MappingProxyType(dict(self.default_request_headers)),
            )

    def is_set(self, name: str) -> bool:
        """Return True when the named field was supplied."""
        if name not in _FIELD_NAMES:
            raise AttributeError(f"unknown option {name!r}")
        return getattr(self, name) is not None

    def set_fields(self) -> tuple[str, ...]:
        """Names of all supplied fields, in declaration order."""
        return tuple(name for name in _FIELD_NAMES if self.is_set(name))

    def replace(self, **changes: Any) -> HttpClientOptions:
        """Return a copy with ``changes`` applied; other fields are kept."""
        return replace(self, **changes)


_FIELD_NAMES: tuple[str, ...] = tuple(
    f.name for f in fields(HttpClientOptions)
)

OPTION_NAMES = _FIELD_NAMES

TRANSPORT_OPTION_NAMES: tuple[str, ...] = (
    "pooled_connection_lifetime_seconds",
    "max_connections_per_server",
    "connect_timeout_seconds",
    "automatic_decompression",
    "keep_alive_ping_delay_seconds",
    "keep_alive_ping_timeout_seconds",
    "keep_alive_ping_policy",
    "use_proxy",
    "proxy",
    "response_drain_timeout_seconds",
    "max_response_drain_size",
    "max_response_headers_length",
    "ssl_options",
)
