# pyright: reportUnknownMemberType=false
import logging
import math
import ssl
from unittest.mock import Mock

import pytest
from requests.adapters import BaseAdapter

from clientopts.networking.config import (
    NO_BASE_ADDRESS,
    BuildTransport,
    CustomTransport,
    ResolvedClientConfig,
    TransportSettings,
    resolve,
)
from clientopts.networking.customizer import (
    NO_CUSTOMIZATION,
    CallableCustomizer,
)
from clientopts.networking.options import (
    PLATFORM_DEFAULT,
    SYSTEM_PROXY,
    DecompressionMethods,
    HttpClientOptions,
    KeepAlivePingPolicy,
    ProxySettings,
)


def test_resolve_empty_options_yields_default_table():
    config = resolve(HttpClientOptions())

    assert config.timeout_seconds == 100.0
    assert config.base_address == NO_BASE_ADDRESS
    assert dict(config.default_request_headers) == {}
    assert config.use_cookie_container is False
    assert config.allow_auto_redirect is True
    assert config.customizer is NO_CUSTOMIZATION
    assert isinstance(config.transport, BuildTransport)

    settings = config.transport_settings
    assert settings.pooled_connection_lifetime_seconds == 600.0
    assert settings.max_connections_per_server == 40
    assert settings.connect_timeout_seconds is PLATFORM_DEFAULT
    assert settings.automatic_decompression is DecompressionMethods.NONE
    assert math.isinf(settings.keep_alive_ping_delay_seconds)
    assert settings.keep_alive_ping_timeout_seconds == 20.0
    assert settings.keep_alive_ping_policy is KeepAlivePingPolicy.ALWAYS
    assert settings.use_proxy is True
    assert settings.proxy is SYSTEM_PROXY
    assert settings.response_drain_timeout_seconds == 2.0
    assert settings.max_response_drain_size == 1048576
    assert settings.max_response_headers_length == 65536
    assert settings.ssl_options is PLATFORM_DEFAULT


def test_resolve_none_matches_empty_options():
    assert resolve(None) == resolve(HttpClientOptions())
    assert resolve() == ResolvedClientConfig()


def test_resolve_empty_options_drain_and_redirect_defaults():
    config = resolve(HttpClientOptions())

    assert config.allow_auto_redirect is True
    assert config.transport_settings.response_drain_timeout_seconds == 2.0
    assert config.transport_settings.max_response_drain_size == 1048576


def test_resolve_keeps_given_timeout_and_defaults_the_rest():
    config = resolve(HttpClientOptions(timeout_seconds=30.0))

    assert config.timeout_seconds == 30.0
    assert config.transport_settings.max_connections_per_server == 40


def test_resolve_passes_every_present_value_through_unchanged():
    context = ssl.create_default_context()
    proxy = ProxySettings(url="http://proxy.local:3128")
    options = HttpClientOptions(
        pooled_connection_lifetime_seconds=5.0,
        use_cookie_container=True,
        max_connections_per_server=3,
        timeout_seconds=7.5,
        connect_timeout_seconds=1.5,
        default_request_headers={"X-Test": "yes"},
        base_address="https://api.example.com/v1/",
        response_drain_timeout_seconds=0.5,
        allow_auto_redirect=False,
        automatic_decompression=DecompressionMethods.ALL,
        keep_alive_ping_delay_seconds=30.0,
        keep_alive_ping_timeout_seconds=4.0,
        keep_alive_ping_policy=KeepAlivePingPolicy.WITH_ACTIVE_REQUESTS,
        use_proxy=False,
        proxy=proxy,
        max_response_drain_size=10,
        max_response_headers_length=100,
        ssl_options=context,
    )

    config = resolve(options)

    assert config.timeout_seconds == 7.5
    assert config.base_address == "https://api.example.com/v1/"
    assert dict(config.default_request_headers) == {"X-Test": "yes"}
    assert config.use_cookie_container is True
    assert config.allow_auto_redirect is False
    assert config.transport_settings == TransportSettings(
        pooled_connection_lifetime_seconds=5.0,
        max_connections_per_server=3,
        connect_timeout_seconds=1.5,
        automatic_decompression=DecompressionMethods.ALL,
        keep_alive_ping_delay_seconds=30.0,
        keep_alive_ping_timeout_seconds=4.0,
        keep_alive_ping_policy=KeepAlivePingPolicy.WITH_ACTIVE_REQUESTS,
        use_proxy=False,
        proxy=proxy,
        response_drain_timeout_seconds=0.5,
        max_response_drain_size=10,
        max_response_headers_length=100,
        ssl_options=context,
    )


def test_resolve_does_not_clamp_or_validate_values():
    config = resolve(
        HttpClientOptions(timeout_seconds=-1.0, max_connections_per_server=0)
    )

    assert config.timeout_seconds == -1.0
    assert config.transport_settings.max_connections_per_server == 0


def test_resolve_is_idempotent_for_equal_inputs():
    def warm_up(session):
        return None

    first = HttpClientOptions(timeout_seconds=3.0, modify_client=warm_up)
    second = HttpClientOptions(timeout_seconds=3.0, modify_client=warm_up)

    assert resolve(first) == resolve(second)
    assert resolve(first) == resolve(first)


def test_resolve_wraps_plain_callable_customizer():
    def warm_up(session):
        return None

    config = resolve(HttpClientOptions(modify_client=warm_up))

    assert isinstance(config.customizer, CallableCustomizer)
    assert config.customizer.func is warm_up


def test_resolve_keeps_customizer_objects():
    class Customizer:
        def customize(self, session):
            return None

    customizer = Customizer()

    config = resolve(HttpClientOptions(modify_client=customizer))

    assert config.customizer is customizer


def test_resolve_custom_adapter_still_carries_default_settings():
    adapter = Mock(spec=BaseAdapter)

    config = resolve(HttpClientOptions(transport_adapter=adapter))

    assert isinstance(config.transport, CustomTransport)
    assert config.transport.adapter is adapter
    assert config.uses_custom_transport
    assert config.transport_settings == TransportSettings()


def test_resolve_custom_adapter_warns_about_ignored_transport_options(caplog):
    adapter = Mock(spec=BaseAdapter)
    options = HttpClientOptions(
        transport_adapter=adapter,
        max_connections_per_server=5,
        use_proxy=False,
        timeout_seconds=10.0,
    )

    with caplog.at_level(logging.WARNING, "clientopts.networking.config"):
        config = resolve(options)

    assert config.transport_settings.max_connections_per_server == 5
    assert len(caplog.records) == 1
    message = caplog.records[0].getMessage()
    assert "max_connections_per_server" in message
    assert "use_proxy" in message
    assert "timeout_seconds" not in message


def test_resolve_custom_adapter_alone_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING, "clientopts.networking.config"):
        resolve(HttpClientOptions(transport_adapter=Mock(spec=BaseAdapter)))

    assert caplog.records == []


def test_resolved_headers_are_immutable():
    config = resolve(HttpClientOptions(default_request_headers={"X-A": "1"}))

    with pytest.raises(TypeError):
        config.default_request_headers["X-A"] = "2"  # type: ignore[index]


def test_resolved_config_is_frozen():
    config = resolve()

    with pytest.raises(AttributeError):
        config.timeout_seconds = 1.0  # type: ignore[misc]


def test_resolved_headers_do_not_track_caller_dict():
    headers = {"X-A": "1"}
    options = HttpClientOptions(default_request_headers=headers)
    headers["X-A"] = "2"

    assert resolve(options).default_request_headers["X-A"] == "1"
