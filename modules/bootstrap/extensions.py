"""Concurrent extension startup with aggregated failure reporting.

All eligible extensions are launched together and every one of them is
awaited before the phase resolves. Failures are collected rather than
short-circuiting the group, so a slow sibling is never abandoned and every
failing key is reported in a single :class:`ExtensionStartupError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Mapping

from modules.bootstrap.errors import ExtensionStartupError
from modules.bootstrap.registry import ExtensionRegistry
from modules.bootstrap.state import ExtensionOutcome, ExtensionStartTask
from modules.common.logs import human_reason, log as human_log

if TYPE_CHECKING:  # pragma: no cover - typing only
    from modules.bootstrap.service import Service

log = logging.getLogger("svc.extensions")

__all__ = ["collect_tasks", "failure_key", "start_extensions"]


def collect_tasks(
    configured: Mapping[str, Any] | None, registry: ExtensionRegistry
) -> list[ExtensionStartTask]:
    """Return start tasks for every configured, registered and startable extension."""

    tasks: list[ExtensionStartTask] = []
    for key, settings in (configured or {}).items():
        if settings is None:
            log.debug("extension skipped: no settings", extra={"extension": key})
            continue
        handle = registry.get(key)
        if handle is None:
            log.debug("extension skipped: not registered", extra={"extension": key})
            continue
        if not handle.has_start():
            log.debug("extension skipped: no start()", extra={"extension": key})
            continue
        tasks.append(ExtensionStartTask(key=key, settings=settings, handle=handle))
    return tasks


def failure_key(task: ExtensionStartTask) -> str:
    explicit = getattr(task.error, "key", None)
    if isinstance(explicit, str) and explicit:
        return explicit
    return task.key or "unknown"


def _record_failure(service: "Service", task: ExtensionStartTask, exc: BaseException) -> None:
    task.fail(exc)
    human_log.human(
        "error",
        "extension startup failed",
        service=service.key,
        extension=failure_key(task),
        error=human_reason(exc),
    )


async def _run(service: "Service", task: ExtensionStartTask) -> None:
    try:
        await task.handle.start(service, task.settings)
    except Exception as exc:
        _record_failure(service, task, exc)
    else:
        task.succeed()
        human_log.human("info", "extension started", service=service.key, extension=task.key)


async def start_extensions(
    service: "Service",
    configured: Mapping[str, Any] | None,
    registry: ExtensionRegistry,
) -> list[ExtensionStartTask]:
    """Start every eligible extension concurrently and wait for all of them.

    Returns the settled tasks. Raises :class:`ExtensionStartupError` naming
    every failed extension once all starts have finished. An extension that
    cancels itself counts as a failure; cancelling the caller still
    propagates.
    """

    tasks = collect_tasks(configured, registry)
    if not tasks:
        return tasks

    results = await asyncio.gather(
        *(_run(service, task) for task in tasks), return_exceptions=True
    )
    for task, result in zip(tasks, results):
        if not isinstance(result, BaseException):
            continue
        if not isinstance(result, (Exception, asyncio.CancelledError)):
            raise result
        _record_failure(service, task, result)

    failures = [
        (failure_key(task), task.error)
        for task in tasks
        if task.outcome is ExtensionOutcome.FAILURE and task.error is not None
    ]
    if failures:
        raise ExtensionStartupError(service.key, failures) from failures[0][1]
    return tasks
