"""Build ``HttpClientOptions`` from process configuration.

``HttpClientSettings`` reads ``HTTP_CLIENT_<FIELD>`` environment variables.
Mappings (settings files, parsed TOML/JSON) may key options by field name
(``timeout_seconds``), by the same name without the unit suffix
(``timeout``), or by the PascalCase names found in application settings
files (``Timeout``, ``PooledConnectionLifetime``). Durations accept seconds,
ISO 8601 durations, ``[d.]hh:mm:ss[.fffffff]`` strings and ``"infinite"``.
"""

from __future__ import annotations

import math
import re
from datetime import timedelta
from typing import Any, Mapping

from pydantic import Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .errors import OptionsConfigurationError
from .options import (
    PLATFORM_DEFAULT,
    SYSTEM_PROXY,
    DecompressionMethods,
    HttpClientOptions,
    KeepAlivePingPolicy,
    PlatformDefault,
    ProxySettings,
    SystemProxy,
)

ENV_PREFIX = "HTTP_CLIENT_"

_TIMESPAN = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?"
    r"(?P<hours>\d{1,2}):(?P<minutes>\d{2}):(?P<seconds>\d{2})"
    r"(?:\.(?P<fraction>\d{1,7}))?$"
)

_INFINITE_WORDS = frozenset({"inf", "infinite", "infinity"})
_PLATFORM_WORDS = frozenset({"default", "platform", "platform_default"})

_CODING_NAMES = {
    "none": DecompressionMethods.NONE,
    "gzip": DecompressionMethods.GZIP,
    "deflate": DecompressionMethods.DEFLATE,
    "br": DecompressionMethods.BROTLI,
    "brotli": DecompressionMethods.BROTLI,
    "all": DecompressionMethods.ALL,
}

_DURATION_FIELDS = (
    "pooled_connection_lifetime_seconds",
    "timeout_seconds",
    "response_drain_timeout_seconds",
    "keep_alive_ping_delay_seconds",
    "keep_alive_ping_timeout_seconds",
)

_timedelta_adapter = TypeAdapter(timedelta)


def _timespan_seconds(match: re.Match[str]) -> float:
    parts = match.groupdict()
    fraction = parts["fraction"] or "0"
    seconds = (
        int(parts["days"] or 0) * 86400
        + int(parts["hours"]) * 3600
        + int(parts["minutes"]) * 60
        + int(parts["seconds"])
        + int(fraction) / 10 ** len(fraction)
    )
    if parts["sign"]:
        # -00:00:00.001 is the conventional spelling of an infinite timeout.
        if seconds == 0.001:
            return math.inf
        return -seconds
    return float(seconds)


def parse_duration(value: Any) -> float:
    """Return ``value`` as seconds.

    Raises ``ValueError`` for anything that is not a number, a
    ``timedelta``, ``"infinite"``, a TimeSpan string or an ISO 8601 duration.
    """
    if isinstance(value, bool):
        raise ValueError("expected a duration")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if not isinstance(value, str):
        raise ValueError("expected a duration")

    text = value.strip()
    if text.lower() in _INFINITE_WORDS:
        return math.inf
    match = _TIMESPAN.match(text)
    if match is not None:
        return _timespan_seconds(match)
    try:
        return float(text)
    except ValueError:
        pass
    try:
        return _timedelta_adapter.validate_python(text).total_seconds()
    except ValidationError:
        raise ValueError(
            "expected seconds, an ISO 8601 duration or [d.]hh:mm:ss[.fffffff]"
        ) from None


def parse_decompression(value: Any) -> DecompressionMethods:
    """Parse ``"gzip, deflate"``, ``"GZip|Deflate"``, a list or an int."""
    if isinstance(value, DecompressionMethods):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return DecompressionMethods(value)
    if isinstance(value, str):
        names = re.split(r"[,|\s]+", value.strip())
    elif isinstance(value, (list, tuple)):
        names = [str(item) for item in value]
    else:
        raise ValueError("expected decompression method names")

    methods = DecompressionMethods.NONE
    for name in filter(None, names):
        try:
            methods |= _CODING_NAMES[name.lower()]
        except KeyError:
            raise ValueError(
                f"unknown decompression method {name!r}"
            ) from None
    return methods


def _normalize_enum_name(text: str) -> str:
    return re.sub(r"[_\-\s]", "", text).lower()


def parse_keep_alive_policy(value: Any) -> KeepAlivePingPolicy:
    if isinstance(value, KeepAlivePingPolicy):
        return value
    if isinstance(value, str):
        wanted = _normalize_enum_name(value)
        for policy in KeepAlivePingPolicy:
            if wanted in (
                _normalize_enum_name(policy.name),
                _normalize_enum_name(policy.value),
            ):
                return policy
    raise ValueError("unknown keep-alive policy")


def parse_proxy(value: Any) -> ProxySettings | SystemProxy:
    if isinstance(value, (ProxySettings, SystemProxy)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower() == "system":
            return SYSTEM_PROXY
        if text:
            return ProxySettings(url=text)
    if isinstance(value, Mapping):
        url = value.get("url", value.get("Address"))
        if isinstance(url, str) and url:
            return ProxySettings(url=url)
    raise ValueError("expected a proxy URL, 'system' or a mapping with 'url'")


class HttpClientSettings(BaseSettings):
    """Loadable subset of ``HttpClientOptions``.

    Every field defaults to ``None`` so unset configuration stays absent
    and the resolver's defaults apply. Callbacks, transport adapters and TLS
    contexts only exist in code and have no field here.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=True,
    )

    pooled_connection_lifetime_seconds: float | None = None
    use_cookie_container: bool | None = None
    max_connections_per_server: int | None = None
    timeout_seconds: float | None = None
    connect_timeout_seconds: float | PlatformDefault | None = None
    default_request_headers: dict[str, str] | None = None
    base_address: str | None = None
    response_drain_timeout_seconds: float | None = None
    allow_auto_redirect: bool | None = None
    automatic_decompression: DecompressionMethods | None = None
    keep_alive_ping_delay_seconds: float | None = None
    keep_alive_ping_timeout_seconds: float | None = None
    keep_alive_ping_policy: KeepAlivePingPolicy | None = None
    use_proxy: bool | None = None
    proxy: ProxySettings | SystemProxy | None = Field(
        default=None, description="Proxy URL, 'system', or {'url': ...}"
    )
    max_response_drain_size: int | None = None
    max_response_headers_length: int | None = None

    @field_validator(*_DURATION_FIELDS, mode="before")
    @classmethod
    def _validate_duration(cls, value: Any) -> Any:
        return None if value is None else parse_duration(value)

    @field_validator("connect_timeout_seconds", mode="plain")
    @classmethod
    def _validate_connect_timeout(cls, value: Any) -> Any:
        if value is None or isinstance(value, PlatformDefault):
            return value
        if isinstance(value, str) and value.strip().lower() in _PLATFORM_WORDS:
            return PLATFORM_DEFAULT
        return parse_duration(value)

    @field_validator("automatic_decompression", mode="plain")
    @classmethod
    def _validate_decompression(cls, value: Any) -> Any:
        return None if value is None else parse_decompression(value)

    @field_validator("keep_alive_ping_policy", mode="plain")
    @classmethod
    def _validate_keep_alive_policy(cls, value: Any) -> Any:
        return None if value is None else parse_keep_alive_policy(value)

    @field_validator("proxy", mode="plain")
    @classmethod
    def _validate_proxy(cls, value: Any) -> Any:
        return None if value is None else parse_proxy(value)

    def to_options(self) -> HttpClientOptions:
        return HttpClientOptions(
            **{name: getattr(self, name) for name in type(self).model_fields}
        )


class _MappingSettings(HttpClientSettings):
    """``HttpClientSettings`` fed only from keyword arguments."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)


def _strip_unit(name: str) -> str:
    return name[: -len("_seconds")] if name.endswith("_seconds") else name


def _pascal(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


def _build_aliases() -> dict[str, str]:
    aliases: dict[str, str] = {}
    for name in HttpClientSettings.model_fields:
        short = _strip_unit(name)
        for alias in (name, short, _pascal(short)):
            aliases[alias] = name
    return aliases


_ALIASES = _build_aliases()


def canonical_option_name(key: str) -> str:
    """Map a configuration key to its ``HttpClientOptions`` field name.

    Keys that are not loadable options are returned unchanged.
    """
    return _ALIASES.get(key, key)


def _configuration_error(
    exc: ValidationError, given: Mapping[str, str] | None = None
) -> OptionsConfigurationError:
    error = exc.errors()[0]
    loc = error.get("loc") or ("<options>",)
    name = str(loc[0])
    key = given.get(name, name) if given else name
    return OptionsConfigurationError(key, error.get("input"), error["msg"])


def options_from_mapping(mapping: Mapping[str, Any]) -> HttpClientOptions:
    """Build options from a configuration mapping.

    ``None`` values are treated as absent. Two keys naming the same option,
    unknown keys, keys naming options that only exist in code (callbacks,
    adapters, TLS contexts) and values that cannot be parsed raise
    ``OptionsConfigurationError``.
    """
    values: dict[str, Any] = {}
    given: dict[str, str] = {}
    for key, value in mapping.items():
        name = canonical_option_name(key)
        if name in given:
            raise OptionsConfigurationError(
                key, value, f"same option as {given[name]!r}"
            )
        given[name] = key
        values[name] = value

    try:
        settings = _MappingSettings(**values)
    except ValidationError as exc:
        raise _configuration_error(exc, given) from exc
    return settings.to_options()


def options_from_env() -> HttpClientOptions:
    """Build options from ``HTTP_CLIENT_<FIELD>`` environment variables.

    ``HTTP_CLIENT_DEFAULT_REQUEST_HEADERS`` holds a JSON object.
    """
    try:
        settings = HttpClientSettings()
    except ValidationError as exc:
        raise _configuration_error(exc) from exc
    return settings.to_options()
