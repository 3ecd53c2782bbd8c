"""Error types for the clientopts networking layer."""

from __future__ import annotations

from typing import Any

import requests


class HttpClientOptionsError(Exception):
    """Base exception for options loading and client construction failures."""


class OptionsConfigurationError(HttpClientOptionsError, ValueError):
    """Raised when process configuration cannot be turned into options."""

    def __init__(self, key: str, value: Any, reason: str) -> None:
        super().__init__(f"invalid value for {key!r}: {value!r} ({reason})")
        self.key = key
        self.value = value
        self.reason = reason


class CustomizerError(HttpClientOptionsError, TypeError):
    """Raised when a customizer cannot run on the requested code path."""


class ResponseHeadersTooLargeError(requests.exceptions.RequestException):
    """Raised when a response carries more header bytes than allowed."""

    def __init__(self, limit: int, size: int, **kwargs: Any) -> None:
        super().__init__(
            f"response headers are {size} bytes, limit is {limit}", **kwargs
        )
        self.limit = limit
        self.size = size
