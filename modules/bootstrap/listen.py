"""Bounded-retry listener bind followed by the post-bind startup steps."""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

from modules.bootstrap.errors import BindRetriesExhausted, PostBindError
from modules.bootstrap.state import ServiceState, StartupAttempt
from modules.common.logs import human_reason, log
from shared import health as healthmod

if TYPE_CHECKING:  # pragma: no cover - typing only
    from modules.bootstrap.service import Service

__all__ = ["bind_with_retry", "run_post_bind"]

# Indirection so tests can observe retry delays without sleeping.
_sleep = asyncio.sleep


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def _listen_once(service: "Service", timeout: Optional[float]) -> None:
    if timeout is None:
        await service.listener.listen()
    else:
        await asyncio.wait_for(service.listener.listen(), timeout)


async def _post_bind_step(
    service: "Service", state: ServiceState, component: str, step: Callable[[], Any]
) -> None:
    service._transition(state)
    try:
        await _maybe_await(step())
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        healthmod.set_component(component, False)
        raise PostBindError(service.key, component, exc) from exc
    healthmod.set_component(component, True)


async def run_post_bind(service: "Service") -> None:
    """Start the scheduler, then run the security check.

    Both run only after a successful bind. A fault in either one is final for
    the run; it never counts against the bind retry budget.
    """

    await _post_bind_step(
        service, ServiceState.STARTING_SCHEDULER, "scheduler", service.scheduler.start
    )
    await _post_bind_step(
        service, ServiceState.CHECKING_SECURITY, "security", service.security.check
    )


async def bind_with_retry(
    service: "Service",
    attempt: StartupAttempt,
    *,
    delay: float,
    timeout: Optional[float] = None,
) -> None:
    """Bind the service listener, retrying up to ``attempt.budget`` times.

    Every failed bind waits ``delay`` seconds before the next attempt, except
    the last one, which raises :class:`BindRetriesExhausted` carrying the
    underlying fault. ``timeout`` caps a single attempt; ``None`` leaves
    attempts unbounded and a timed out attempt counts as a failed bind.
    """

    listener = service.listener
    while True:
        number = attempt.begin()
        service._transition(ServiceState.BINDING)
        log.human(
            "info",
            "service starting",
            service=service.key,
            host=listener.host,
            port=listener.port,
            attempt=number,
            budget=attempt.budget,
        )
        try:
            await _listen_once(service, timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            attempt.record_failure(exc)
            healthmod.set_component("listener", False)
            log.human(
                "warning",
                "service bind failed",
                service=service.key,
                host=listener.host,
                port=listener.port,
                attempt=number,
                remaining=attempt.remaining,
                error=human_reason(exc),
            )
            if attempt.exhausted:
                raise BindRetriesExhausted(service.key, attempt.attempts, exc) from exc
            service._transition(ServiceState.RETRY_WAIT)
            await _sleep(delay)
            continue

        healthmod.set_component("listener", True)
        await run_post_bind(service)
        return
