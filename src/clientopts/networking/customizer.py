"""Post-construction customization hook for configured sessions.

A customizer runs exactly once, right after a session is built and before it
is handed to any caller. It may do blocking work, or return an awaitable when
the session is created through one of the async entry points.
"""

from __future__ import annotations

import inspect
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    import requests

CustomizeResult = Awaitable[None] | None


@runtime_checkable
class ClientCustomizer(Protocol):
    """Single-method capability that adjusts a freshly built session."""

    def customize(self, session: requests.Session) -> CustomizeResult: ...


class CallableCustomizer:
    """Adapt a plain function or coroutine function to ``ClientCustomizer``."""

    def __init__(self, func: Callable[[requests.Session], Any]) -> None:
        if not callable(func):
            raise TypeError(
                f"customizer must be callable, got {type(func).__name__}"
            )
        self._func = func

    @property
    def func(self) -> Callable[[requests.Session], Any]:
        return self._func

    def customize(self, session: requests.Session) -> CustomizeResult:
        return self._func(session)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallableCustomizer):
            return NotImplemented
        return self._func == other._func

    def __hash__(self) -> int:
        return hash(self._func)

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"CallableCustomizer({name})"


class _NoCustomization:
    def customize(self, session: requests.Session) -> None:
        return None

    def __repr__(self) -> str:
        return "NO_CUSTOMIZATION"


NO_CUSTOMIZATION: ClientCustomizer = _NoCustomization()


def as_customizer(
    value: ClientCustomizer | Callable[[requests.Session], Any],
) -> ClientCustomizer:
    """Normalize a customizer object or a plain callable."""
    if isinstance(value, ClientCustomizer):
        return value
    return CallableCustomizer(value)


def is_awaitable(result: object) -> bool:
    return inspect.isawaitable(result)
