"""Service bootstrap: ordered startup with bind retries and extension fan-out."""

from __future__ import annotations

from modules.bootstrap.config import RuntimeConfiguration
from modules.bootstrap.errors import (
    BindRetriesExhausted,
    ExtensionStartupError,
    MissingParameter,
    PathNotFound,
    PostBindError,
    SecurityViolation,
    ServiceAlreadyStarted,
    StartupError,
)
from modules.bootstrap.registry import ExtensionHandle, ExtensionRegistry
from modules.bootstrap.service import Service
from modules.bootstrap.state import (
    ExtensionOutcome,
    ExtensionStartTask,
    ServiceState,
    StartupAttempt,
)

__all__ = [
    "BindRetriesExhausted",
    "ExtensionHandle",
    "ExtensionOutcome",
    "ExtensionRegistry",
    "ExtensionStartTask",
    "ExtensionStartupError",
    "MissingParameter",
    "PathNotFound",
    "PostBindError",
    "RuntimeConfiguration",
    "SecurityViolation",
    "Service",
    "ServiceAlreadyStarted",
    "ServiceState",
    "StartupAttempt",
    "StartupError",
]
