"""State records owned by the startup orchestrator."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from modules.bootstrap.registry import ExtensionHandle

__all__ = [
    "ExtensionOutcome",
    "ExtensionStartTask",
    "ServiceState",
    "StartupAttempt",
]


class ServiceState(str, enum.Enum):
    IDLE = "idle"
    BINDING = "binding"
    RETRY_WAIT = "retry_wait"
    STARTING_SCHEDULER = "starting_scheduler"
    CHECKING_SECURITY = "checking_security"
    STARTED = "started"
    FAILED = "failed"


@dataclass(slots=True)
class StartupAttempt:
    """Retry bookkeeping for one ``start()`` run."""

    budget: int
    attempts: int = 0
    last_error: Optional[BaseException] = None

    @property
    def remaining(self) -> int:
        return max(0, self.budget - self.attempts)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.budget

    def begin(self) -> int:
        self.attempts += 1
        return self.attempts

    def record_failure(self, exc: BaseException) -> None:
        self.last_error = exc


class ExtensionOutcome(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(slots=True)
class ExtensionStartTask:
    key: str
    settings: Any
    handle: ExtensionHandle
    outcome: ExtensionOutcome = ExtensionOutcome.PENDING
    error: Optional[BaseException] = field(default=None, repr=False)

    def succeed(self) -> None:
        self.outcome = ExtensionOutcome.SUCCESS
        self.error = None

    def fail(self, exc: BaseException) -> None:
        self.outcome = ExtensionOutcome.FAILURE
        self.error = exc
