"""Transport adapter built from resolved transport settings.

The adapter owns everything below the session: connection pooling and its
lifetime, connect timeouts, TCP keep-alive probes, TLS context and the
response-header size limit.
"""

from __future__ import annotations

import logging
import math
import socket
import threading
import time
from http.client import HTTPException
from typing import Any

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection

from .config import TransportSettings
from .errors import ResponseHeadersTooLargeError
from .options import (
    DecompressionMethods,
    KeepAlivePingPolicy,
    PlatformDefault,
)

logger = logging.getLogger(__name__)

_DRAIN_CHUNK_SIZE = 16 * 1024

_CONTENT_CODINGS = (
    (DecompressionMethods.GZIP, "gzip"),
    (DecompressionMethods.DEFLATE, "deflate"),
    (DecompressionMethods.BROTLI, "br"),
)


def accept_encoding(methods: DecompressionMethods) -> str:
    """Return the Accept-Encoding header value for ``methods``."""
    codings = [name for flag, name in _CONTENT_CODINGS if flag in methods]
    if not codings:
        return "identity"
    return ", ".join(codings)


def keep_alive_socket_options(
    settings: TransportSettings,
) -> list[tuple[int, int, int]]:
    """Socket options for new connections, including TCP keep-alive probes.

    An infinite ping delay disables probing. The ping timeout becomes the
    probe interval with a single allowed miss.
    """
    options = list(HTTPConnection.default_socket_options)
    delay = settings.keep_alive_ping_delay_seconds
    if math.isinf(delay):
        return options

    policy = settings.keep_alive_ping_policy
    if policy is KeepAlivePingPolicy.WITH_ACTIVE_REQUESTS:
        logger.debug(
            "keep-alive policy %s not expressible over TCP; probing always",
            policy.value,
        )

    options.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))
    idle = max(1, int(delay))
    interval = max(1, int(settings.keep_alive_ping_timeout_seconds))
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle))
    elif hasattr(socket, "TCP_KEEPALIVE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, idle))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval))
    if hasattr(socket, "TCP_KEEPCNT"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 1))
    return options


class ConfiguredHTTPAdapter(HTTPAdapter):
    """HTTPAdapter driven by ``TransportSettings``."""

    def __init__(self, settings: TransportSettings) -> None:
        self._settings = settings
        self._socket_options = keep_alive_socket_options(settings)
        self._lifetime_lock = threading.Lock()
        self._pool_started = time.monotonic()
        super().__init__(
            pool_maxsize=settings.max_connections_per_server,
            pool_block=True,
        )

    @property
    def settings(self) -> TransportSettings:
        """Resolved settings this adapter was built from."""
        return self._settings

    def _pool_kwargs(self) -> dict[str, Any]:
        pool_kwargs: dict[str, Any] = {"socket_options": self._socket_options}
        if not isinstance(self._settings.ssl_options, PlatformDefault):
            pool_kwargs["ssl_context"] = self._settings.ssl_options
        return pool_kwargs

    def init_poolmanager(
        self, connections, maxsize, block=False, **pool_kwargs
    ):
        pool_kwargs = {**self._pool_kwargs(), **pool_kwargs}
        super().init_poolmanager(connections, maxsize, block, **pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        proxy_kwargs = {**self._pool_kwargs(), **proxy_kwargs}
        return super().proxy_manager_for(proxy, **proxy_kwargs)

    def _recycle_expired_pools(self) -> None:
        lifetime = self._settings.pooled_connection_lifetime_seconds
        if math.isinf(lifetime):
            return
        with self._lifetime_lock:
            if time.monotonic() - self._pool_started < lifetime:
                return
            logger.debug("connection pools exceeded %ss lifetime", lifetime)
            self.poolmanager.clear()
            for manager in self.proxy_manager.values():
                manager.clear()
            self._pool_started = time.monotonic()

    def _connect_timeout(self, timeout):
        connect = self._settings.connect_timeout_seconds
        if isinstance(connect, PlatformDefault) or isinstance(timeout, tuple):
            return timeout
        if math.isinf(connect):
            connect = None
        return (connect, timeout)

    def send(self, request, stream=False, timeout=None, **kwargs):
        self._recycle_expired_pools()
        return super().send(
            request,
            stream=stream,
            timeout=self._connect_timeout(timeout),
            **kwargs,
        )

    def build_response(self, req, resp) -> requests.Response:
        limit = self._settings.max_response_headers_length
        size = sum(
            len(name) + len(value) + 4 for name, value in resp.headers.items()
        )
        if size > limit:
            resp.close()
            resp.release_conn()
            raise ResponseHeadersTooLargeError(limit, size, request=req)
        return super().build_response(req, resp)


def _response_socket(raw: Any) -> socket.socket | None:
    connection = getattr(raw, "connection", None)
    return getattr(connection, "sock", None)


def _read_chunk(raw: Any, amount: int) -> bytes:
    # One receive per call, so the deadline is checked between receives.
    read1 = getattr(getattr(raw, "_fp", None), "read1", None)
    if read1 is not None:
        return read1(amount)
    return raw.read(amount, decode_content=False)


def drain_response(
    response: requests.Response, max_size: int, timeout_seconds: float
) -> int:
    """Discard the rest of ``response`` so its connection can be reused.

    Reading stops after ``max_size`` bytes or ``timeout_seconds``; each read
    is bounded by the time left, and a response not fully drained by then is
    closed instead of returned to the pool. Returns the number of bytes
    discarded.
    """
    if getattr(response, "_content_consumed", False):
        response.close()
        return 0

    deadline = time.monotonic() + timeout_seconds
    sock = _response_socket(response.raw)
    original_timeout = sock.gettimeout() if sock is not None else None
    drained = 0
    exhausted = False
    while drained < max_size:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        if sock is not None:
            sock.settimeout(remaining)
        try:
            chunk = _read_chunk(
                response.raw, min(_DRAIN_CHUNK_SIZE, max_size - drained)
            )
        except (OSError, HTTPException, urllib3.exceptions.HTTPError):
            logger.debug(
                "response drain interrupted after %d bytes",
                drained,
                exc_info=True,
            )
            break
        if not chunk:
            exhausted = True
            break
        drained += len(chunk)

    if exhausted:
        if sock is not None:
            sock.settimeout(original_timeout)
        response.raw.release_conn()
    else:
        response.close()
    return drained
