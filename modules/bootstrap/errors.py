"""Exception taxonomy for service startup."""

from __future__ import annotations

from typing import Sequence

__all__ = [
    "BindRetriesExhausted",
    "ExtensionStartupError",
    "MissingParameter",
    "PathNotFound",
    "PostBindError",
    "SecurityViolation",
    "ServiceAlreadyStarted",
    "StartupError",
]


class StartupError(RuntimeError):
    """Base class for every failure surfaced by ``Service.start``."""

    def __init__(self, service_key: str, message: str) -> None:
        super().__init__(f"[{service_key}] {message}")
        self.service_key = service_key


class BindRetriesExhausted(StartupError):
    """The listener could not bind within the retry budget."""

    def __init__(self, service_key: str, attempts: int, last_error: BaseException | None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(service_key, f"listener bind failed after {attempts} attempt(s){detail}")
        self.attempts = attempts
        self.last_error = last_error


class PostBindError(StartupError):
    """Scheduler start or security check faulted after a successful bind."""

    def __init__(self, service_key: str, phase: str, cause: BaseException) -> None:
        super().__init__(service_key, f"{phase} failed: {cause}")
        self.phase = phase
        self.cause = cause


class ExtensionStartupError(StartupError):
    """One or more extensions failed to start.

    ``failures`` keeps every ``(extension_key, exception)`` pair in the order
    the extensions were launched.
    """

    def __init__(
        self, service_key: str, failures: Sequence[tuple[str, BaseException]]
    ) -> None:
        self.failures = list(failures)
        keys = ", ".join(key for key, _ in self.failures) or "unknown"
        super().__init__(service_key, f"extension startup failed: {keys}")

    @property
    def key(self) -> str:
        if not self.failures:
            return "unknown"
        return self.failures[0][0]

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.failures]


class ServiceAlreadyStarted(StartupError):
    def __init__(self, service_key: str, state: str) -> None:
        super().__init__(service_key, f"start() rejected; service is {state}")
        self.state = state


class SecurityViolation(RuntimeError):
    """Raised by a security checker when the runtime posture is unacceptable."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "security check failed")


class MissingParameter(ValueError):
    def __init__(self, name: str, owner: str) -> None:
        super().__init__(f"missing parameter '{name}' for {owner}")
        self.name = name
        self.owner = owner


class PathNotFound(FileNotFoundError):
    def __init__(self, path: str, owner: str | None = None) -> None:
        suffix = f" (requested by {owner})" if owner else ""
        super().__init__(f"path not found: {path}{suffix}")
        self.path = path
        self.owner = owner
