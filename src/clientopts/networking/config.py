"""Resolved client configuration and the resolver that produces it."""

from __future__ import annotations

import logging
import math
import ssl
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Union

from .customizer import NO_CUSTOMIZATION, ClientCustomizer, as_customizer
from .options import (
    PLATFORM_DEFAULT,
    SYSTEM_PROXY,
    TRANSPORT_OPTION_NAMES,
    DecompressionMethods,
    HttpClientOptions,
    KeepAlivePingPolicy,
    PlatformDefault,
    ProxySettings,
    SystemProxy,
)

if TYPE_CHECKING:
    from requests.adapters import BaseAdapter

logger = logging.getLogger(__name__)

DEFAULT_POOLED_CONNECTION_LIFETIME_SECONDS = 600.0
DEFAULT_USE_COOKIE_CONTAINER = False
DEFAULT_MAX_CONNECTIONS_PER_SERVER = 40
DEFAULT_TIMEOUT_SECONDS = 100.0
DEFAULT_RESPONSE_DRAIN_TIMEOUT_SECONDS = 2.0
DEFAULT_ALLOW_AUTO_REDIRECT = True
DEFAULT_AUTOMATIC_DECOMPRESSION = DecompressionMethods.NONE
DEFAULT_KEEP_ALIVE_PING_DELAY_SECONDS = math.inf
DEFAULT_KEEP_ALIVE_PING_TIMEOUT_SECONDS = 20.0
DEFAULT_KEEP_ALIVE_PING_POLICY = KeepAlivePingPolicy.ALWAYS
DEFAULT_USE_PROXY = True
DEFAULT_MAX_RESPONSE_DRAIN_SIZE = 1024 * 1024
DEFAULT_MAX_RESPONSE_HEADERS_LENGTH = 64 * 1024

NO_BASE_ADDRESS = ""


def _default_headers() -> Mapping[str, str]:
    """Return immutable empty default headers mapping."""

    return MappingProxyType({})


@dataclass(frozen=True)
class TransportSettings:
    """Settings applied to the transport adapter rather than the session."""

    pooled_connection_lifetime_seconds: float = (
        DEFAULT_POOLED_CONNECTION_LIFETIME_SECONDS
    )
    max_connections_per_server: int = DEFAULT_MAX_CONNECTIONS_PER_SERVER
    connect_timeout_seconds: float | PlatformDefault = PLATFORM_DEFAULT
    automatic_decompression: DecompressionMethods = (
        DEFAULT_AUTOMATIC_DECOMPRESSION
    )
    keep_alive_ping_delay_seconds: float = (
        DEFAULT_KEEP_ALIVE_PING_DELAY_SECONDS
    )
    keep_alive_ping_timeout_seconds: float = (
        DEFAULT_KEEP_ALIVE_PING_TIMEOUT_SECONDS
    )
    keep_alive_ping_policy: KeepAlivePingPolicy = (
        DEFAULT_KEEP_ALIVE_PING_POLICY
    )
    use_proxy: bool = DEFAULT_USE_PROXY
    proxy: ProxySettings | SystemProxy = SYSTEM_PROXY
    response_drain_timeout_seconds: float = (
        DEFAULT_RESPONSE_DRAIN_TIMEOUT_SECONDS
    )
    max_response_drain_size: int = DEFAULT_MAX_RESPONSE_DRAIN_SIZE
    max_response_headers_length: int = DEFAULT_MAX_RESPONSE_HEADERS_LENGTH
    ssl_options: ssl.SSLContext | PlatformDefault = PLATFORM_DEFAULT


@dataclass(frozen=True)
class BuildTransport:
    """Build a new adapter from ``settings``."""

    settings: TransportSettings = field(default_factory=TransportSettings)


@dataclass(frozen=True)
class CustomTransport:
    """Use ``adapter`` verbatim.

    ``settings`` carries default-substituted values so both variants have the
    same shape; nothing applies them while a custom adapter is in use.
    """

    adapter: BaseAdapter
    settings: TransportSettings = field(default_factory=TransportSettings)


TransportSource = Union[BuildTransport, CustomTransport]


@dataclass(frozen=True)
class ResolvedClientConfig:
    """Fully resolved configuration for building an HTTP client.

    Client-level fields apply to the session itself; transport-level fields
    live in ``transport``.
    """

    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    base_address: str = NO_BASE_ADDRESS
    default_request_headers: Mapping[str, str] = field(
        default_factory=_default_headers
    )
    use_cookie_container: bool = DEFAULT_USE_COOKIE_CONTAINER
    allow_auto_redirect: bool = DEFAULT_ALLOW_AUTO_REDIRECT
    customizer: ClientCustomizer = NO_CUSTOMIZATION
    transport: TransportSource = field(default_factory=BuildTransport)

    def __post_init__(self) -> None:
        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_request_headers",
            MappingProxyType(dict(self.default_request_headers)),
        )

    @property
    def transport_settings(self) -> TransportSettings:
        return self.transport.settings

    @property
    def uses_custom_transport(self) -> bool:
        return isinstance(self.transport, CustomTransport)


def _pick(value, default):
    return default if value is None else value


def _resolve_transport_settings(
    options: HttpClientOptions,
) -> TransportSettings:
    return TransportSettings(
        pooled_connection_lifetime_seconds=_pick(
            options.pooled_connection_lifetime_seconds,
            DEFAULT_POOLED_CONNECTION_LIFETIME_SECONDS,
        ),
        max_connections_per_server=_pick(
            options.max_connections_per_server,
            DEFAULT_MAX_CONNECTIONS_PER_SERVER,
        ),
        connect_timeout_seconds=_pick(
            options.connect_timeout_seconds, PLATFORM_DEFAULT
        ),
        automatic_decompression=_pick(
            options.automatic_decompression,
            DEFAULT_AUTOMATIC_DECOMPRESSION,
        ),
        keep_alive_ping_delay_seconds=_pick(
            options.keep_alive_ping_delay_seconds,
            DEFAULT_KEEP_ALIVE_PING_DELAY_SECONDS,
        ),
        keep_alive_ping_timeout_seconds=_pick(
            options.keep_alive_ping_timeout_seconds,
            DEFAULT_KEEP_ALIVE_PING_TIMEOUT_SECONDS,
        ),
        keep_alive_ping_policy=_pick(
            options.keep_alive_ping_policy, DEFAULT_KEEP_ALIVE_PING_POLICY
        ),
        use_proxy=_pick(options.use_proxy, DEFAULT_USE_PROXY),
        proxy=_pick(options.proxy, SYSTEM_PROXY),
        response_drain_timeout_seconds=_pick(
            options.response_drain_timeout_seconds,
            DEFAULT_RESPONSE_DRAIN_TIMEOUT_SECONDS,
        ),
        max_response_drain_size=_pick(
            options.max_response_drain_size, DEFAULT_MAX_RESPONSE_DRAIN_SIZE
        ),
        max_response_headers_length=_pick(
            options.max_response_headers_length,
            DEFAULT_MAX_RESPONSE_HEADERS_LENGTH,
        ),
        ssl_options=_pick(options.ssl_options, PLATFORM_DEFAULT),
    )


def resolve(options: HttpClientOptions | None = None) -> ResolvedClientConfig:
    """Substitute documented defaults for every absent option.

    Present values pass through unchanged; nothing is validated here. When a
    custom transport adapter is supplied, transport-level options are still
    resolved but will not be applied, and a warning lists any that were set.
    """
    if options is None:
        options = HttpClientOptions()

    settings = _resolve_transport_settings(options)
    transport: TransportSource
    if options.transport_adapter is not None:
        ignored = [
            name for name in TRANSPORT_OPTION_NAMES if options.is_set(name)
        ]
        if ignored:
            logger.warning(
                "custom transport adapter supplied; ignoring transport "
                "options: %s",
                ", ".join(ignored),
            )
        transport = CustomTransport(
            adapter=options.transport_adapter, settings=settings
        )
    else:
        transport = BuildTransport(settings=settings)

    customizer = (
        NO_CUSTOMIZATION
        if options.modify_client is None
        else as_customizer(options.modify_client)
    )

    return ResolvedClientConfig(
        timeout_seconds=_pick(
            options.timeout_seconds, DEFAULT_TIMEOUT_SECONDS
        ),
        base_address=_pick(options.base_address, NO_BASE_ADDRESS),
        default_request_headers=_pick(
            options.default_request_headers, _default_headers()
        ),
        use_cookie_container=_pick(
            options.use_cookie_container, DEFAULT_USE_COOKIE_CONTAINER
        ),
        allow_auto_redirect=_pick(
            options.allow_auto_redirect, DEFAULT_ALLOW_AUTO_REDIRECT
        ),
        customizer=customizer,
        transport=transport,
    )
