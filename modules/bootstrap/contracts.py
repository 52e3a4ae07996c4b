"""Narrow contracts for the collaborators a service drives during startup."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

__all__ = [
    "Configuration",
    "Includable",
    "Listener",
    "Scheduler",
    "SecurityChecker",
]


@runtime_checkable
class Listener(Protocol):
    host: str
    port: int

    async def listen(self) -> None:
        """Begin accepting connections; raise on failure."""


@runtime_checkable
class Scheduler(Protocol):
    def start(self) -> Any:
        """Begin executing scheduled tasks. May return an awaitable."""


@runtime_checkable
class SecurityChecker(Protocol):
    def check(self) -> Any:
        """Validate the runtime posture; raise on violation."""


@runtime_checkable
class Configuration(Protocol):
    def refresh(self) -> Any:
        """Reload configuration; may return refreshed ``ServiceSettings``."""


@runtime_checkable
class Includable(Protocol):
    def include_builtin(self) -> Any:
        """Register built-in assets (routes, templates) once."""
