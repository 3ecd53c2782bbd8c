"""Client construction from resolved options.

``create_client`` and ``acreate_client`` turn options into a ready-to-use
``ConfiguredSession``: resolve, build the session and its transport, then run
the post-construction customizer exactly once. ``HttpClientCache`` keeps one
session per name so the customizer only runs on first retrieval.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Callable, Union
from urllib.parse import urljoin, urlparse

import requests
from requests.cookies import RequestsCookieJar
from requests.structures import CaseInsensitiveDict

from .config import (
    BuildTransport,
    CustomTransport,
    ResolvedClientConfig,
    resolve,
)
from .customizer import is_awaitable
from .errors import CustomizerError
from .options import HttpClientOptions, ProxySettings
from .transport import ConfiguredHTTPAdapter, accept_encoding, drain_response

logger = logging.getLogger(__name__)

OptionsSource = Union[
    HttpClientOptions,
    ResolvedClientConfig,
    Callable[[], HttpClientOptions],
    None,
]


class RejectAllCookiesPolicy(DefaultCookiePolicy):
    """Cookie policy that neither stores nor returns cookies."""

    def set_ok(self, cookie, request) -> bool:
        return False

    def return_ok(self, cookie, request) -> bool:
        return False


class ConfiguredSession(requests.Session):
    """A requests session carrying client-level defaults.

    Every request inherits the configured timeout, base address, redirect
    policy and proxy choice unless the call passes its own value.
    """

    def __init__(self, config: ResolvedClientConfig) -> None:
        super().__init__()
        self._config = config
        self._request_proxies: dict[str, str] | None = None

    @property
    def config(self) -> ResolvedClientConfig:
        return self._config

    def _absolute_url(self, url: str) -> str:
        base = self._config.base_address
        if not base or urlparse(url).scheme:
            return url
        return urljoin(base, url)

    def request(self, method, url, *args, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self._config.timeout_seconds)
        kwargs.setdefault("allow_redirects", self._config.allow_auto_redirect)
        if self._request_proxies is not None:
            kwargs.setdefault("proxies", dict(self._request_proxies))
        return super().request(
            method, self._absolute_url(url), *args, **kwargs
        )

    def get(self, url, **kwargs) -> requests.Response:
        kwargs.setdefault("allow_redirects", self._config.allow_auto_redirect)
        return super().get(url, **kwargs)

    def options(self, url, **kwargs) -> requests.Response:
        kwargs.setdefault("allow_redirects", self._config.allow_auto_redirect)
        return super().options(url, **kwargs)

    def head(self, url, **kwargs) -> requests.Response:
        kwargs.setdefault("allow_redirects", self._config.allow_auto_redirect)
        return super().head(url, **kwargs)

    def prepare_request(self, request) -> requests.PreparedRequest:
        prepared = super().prepare_request(request)
        if self._config.use_cookie_container:
            return prepared
        # Only a Cookie header the caller set explicitly goes out. The
        # prepared jar also collects Set-Cookie while following redirects.
        prepared.headers.pop("Cookie", None)
        explicit = CaseInsensitiveDict(request.headers or {}).get(
            "Cookie", self.headers.get("Cookie")
        )
        if explicit is not None:
            prepared.headers["Cookie"] = explicit
        prepared._cookies = RequestsCookieJar(policy=RejectAllCookiesPolicy())
        return prepared

    def release(self, response: requests.Response) -> int:
        """Drain and release ``response`` within the configured bounds.

        With a custom transport adapter the response is simply closed.
        Returns the number of body bytes discarded.
        """
        transport = self._config.transport
        if isinstance(transport, CustomTransport):
            response.close()
            return 0
        return drain_response(
            response,
            transport.settings.max_response_drain_size,
            transport.settings.response_drain_timeout_seconds,
        )


def _apply_transport(
    session: ConfiguredSession, transport: BuildTransport | CustomTransport
) -> None:
    if isinstance(transport, CustomTransport):
        adapter = transport.adapter
    else:
        settings = transport.settings
        adapter = ConfiguredHTTPAdapter(settings)
        session.headers["Accept-Encoding"] = accept_encoding(
            settings.automatic_decompression
        )
        if not settings.use_proxy:
            session.trust_env = False
            session.proxies.clear()
        elif isinstance(settings.proxy, ProxySettings):
            session._request_proxies = settings.proxy.as_requests_proxies()

    session.mount("http://", adapter)
    session.mount("https://", adapter)


def build_session(config: ResolvedClientConfig) -> ConfiguredSession:
    """Construct a session from ``config`` without running the customizer.

    A ``CustomTransport`` adapter is mounted as given and no transport
    setting is read.
    """
    session = ConfiguredSession(config)
    _apply_transport(session, config.transport)
    if not config.use_cookie_container:
        session.cookies.set_policy(RejectAllCookiesPolicy())
    session.headers.update(config.default_request_headers)

    logger.debug(
        "built http session base_address=%r custom_transport=%s",
        config.base_address,
        isinstance(config.transport, CustomTransport),
    )
    return session


def _resolve_source(source: OptionsSource) -> ResolvedClientConfig:
    if isinstance(source, ResolvedClientConfig):
        return source
    if callable(source):
        source = source()
    return resolve(source)


def _discard_awaitable(result: Any) -> None:
    close = getattr(result, "close", None)
    if close is not None:
        close()


def create_client(options: OptionsSource = None) -> ConfiguredSession:
    """Build a session and run its customizer before returning it.

    A failing customizer propagates its exception unchanged and the
    half-built session is closed.
    """
    config = _resolve_source(options)
    session = build_session(config)
    try:
        result = config.customizer.customize(session)
        if is_awaitable(result):
            _discard_awaitable(result)
            raise CustomizerError(
                "customizer returned an awaitable; use acreate_client"
            )
    except BaseException:
        logger.warning("http client customization failed", exc_info=True)
        session.close()
        raise
    return session


async def acreate_client(options: OptionsSource = None) -> ConfiguredSession:
    """Async variant of ``create_client`` that awaits async customizers."""
    config = _resolve_source(options)
    session = build_session(config)
    try:
        result = config.customizer.customize(session)
        if is_awaitable(result):
            await result
    except BaseException:
        logger.warning("http client customization failed", exc_info=True)
        session.close()
        raise
    return session


class HttpClientCache:
    """Named sessions built on first retrieval.

    The customizer of a named client runs once, on the retrieval that builds
    it. A failed build caches nothing, so the next retrieval tries again.
    """

    def __init__(self) -> None:
        self._clients: dict[str, ConfiguredSession] = {}
        self._lock = threading.Lock()
        self._build_locks: dict[str, threading.Lock] = {}
        self._async_build_locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def __enter__(self) -> HttpClientCache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _build_lock(self, name: str) -> threading.Lock:
        with self._lock:
            return self._build_locks.setdefault(name, threading.Lock())

    def _async_build_lock(self, name: str) -> asyncio.Lock:
        with self._lock:
            return self._async_build_locks.setdefault(name, asyncio.Lock())

    def _store(
        self, name: str, client: ConfiguredSession
    ) -> ConfiguredSession:
        # Sync and async builders hold different locks; the first to store
        # wins and the other session is closed.
        with self._lock:
            existing = self._clients.setdefault(name, client)
        if existing is not client:
            logger.debug("http client cache discarded duplicate name=%s", name)
            client.close()
        return existing

    def get(
        self, name: str, options: OptionsSource = None
    ) -> ConfiguredSession:
        """Return the session for ``name``, building it on first use.

        ``options`` may be a zero-argument callable; it is only invoked when
        the session has to be built.
        """
        client = self._clients.get(name)
        if client is not None:
            logger.debug("http client cache hit name=%s", name)
            return client

        with self._build_lock(name):
            client = self._clients.get(name)
            if client is None:
                logger.debug("http client cache miss name=%s", name)
                client = self._store(name, create_client(options))
            return client

    async def aget(
        self, name: str, options: OptionsSource = None
    ) -> ConfiguredSession:
        client = self._clients.get(name)
        if client is not None:
            logger.debug("http client cache hit name=%s", name)
            return client

        async with self._async_build_lock(name):
            client = self._clients.get(name)
            if client is None:
                logger.debug("http client cache miss name=%s", name)
                client = self._store(name, await acreate_client(options))
            return client

    def remove(self, name: str) -> bool:
        """Close and forget the session for ``name``."""
        with self._lock:
            client = self._clients.pop(name, None)
        if client is None:
            return False
        client.close()
        return True

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
