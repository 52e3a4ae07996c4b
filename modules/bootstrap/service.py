"""Service startup orchestration.

``Service.start`` drives one run of the startup sequence:

1. refresh configuration and register built-in renderer/routing assets;
2. bind the listener, retrying bind failures within the budget;
3. start the scheduler, then run the security check;
4. start every configured extension concurrently and wait for all of them;
5. hand the service to the user initializer without awaiting it.

Each call produces exactly one outcome: it returns once the whole sequence has
succeeded or raises a single :class:`StartupError` subclass naming the cause.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from config.runtime import ServiceSettings
from modules.bootstrap import fetch
from modules.bootstrap.contracts import (
    Configuration,
    Includable,
    Listener,
    Scheduler,
    SecurityChecker,
)
from modules.bootstrap.errors import (
    ExtensionStartupError,
    MissingParameter,
    PostBindError,
    ServiceAlreadyStarted,
)
from modules.bootstrap.extensions import start_extensions
from modules.bootstrap.listen import bind_with_retry
from modules.bootstrap.registry import ExtensionRegistry
from modules.bootstrap.state import ExtensionStartTask, ServiceState, StartupAttempt
from modules.common.logs import human_reason, log as human_log
from shared import health as healthmod
from shared.logging import set_trace_id

log = logging.getLogger("svc.service")

__all__ = ["Initializer", "Service"]

Initializer = Callable[["Service", dict], Optional[Awaitable[Any]]]

_REQUIRED_PARAMS = ("domain", "name", "key")


def _require(params: Mapping[str, Any], names: Sequence[str], owner: str) -> None:
    for name in names:
        value = params.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingParameter(name, owner)


class Service:
    """A named service brought from constructed to accepting traffic."""

    def __init__(
        self,
        params: Mapping[str, Any],
        *,
        listener: Listener,
        scheduler: Scheduler,
        security: SecurityChecker,
        configuration: Configuration,
        registry: ExtensionRegistry | None = None,
        renderer: Includable | None = None,
        routing: Includable | None = None,
        initialize: Initializer | None = None,
    ) -> None:
        _require(params, _REQUIRED_PARAMS, "service")

        self.key: str = str(params["key"])
        self.name: str = str(params["name"])
        self.domain: str = str(params["domain"])
        self.version: Optional[str] = params.get("version")
        self.active: bool = bool(params.get("active", True))

        raw_settings = params.get("settings")
        if isinstance(raw_settings, ServiceSettings):
            self.settings = raw_settings
            self._settings_overrides: Optional[dict[str, Any]] = None
        else:
            self.settings = ServiceSettings.from_mapping(raw_settings)
            self._settings_overrides = dict(raw_settings or {})

        self.extensions: dict[str, Any] = dict(params.get("extensions") or {})
        self.application: dict[str, Any] = dict(params.get("application") or {})

        self.listener = listener
        self.scheduler = scheduler
        self.security = security
        self.configuration = configuration
        self.registry = registry if registry is not None else ExtensionRegistry()
        self.renderer = renderer
        self.routing = routing
        self.initialize = initialize

        self.attempt: Optional[StartupAttempt] = None
        self.extension_tasks: list[ExtensionStartTask] = []
        self.initializer_task: Optional[asyncio.Task] = None
        self._state = ServiceState.IDLE
        self._starting = False

    def __repr__(self) -> str:
        return f"Service(key={self.key!r}, state={self._state.value})"

    # ------------------------------------------------------------------
    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state is ServiceState.STARTED

    def _transition(self, state: ServiceState) -> None:
        if state is self._state:
            return
        log.debug(
            "service state change",
            extra={"service": self.key, "from_state": self._state.value, "to_state": state.value},
        )
        self._state = state

    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Run the full startup sequence once.

        Raises :class:`ServiceAlreadyStarted` without side effects when the
        service is already started or a start is in flight. A service that
        failed may be started again with a fresh retry budget.
        """

        if self._starting or self._state is ServiceState.STARTED:
            raise ServiceAlreadyStarted(self.key, self._state.value)
        self._starting = True
        trace = set_trace_id()
        try:
            await self._run(trace)
        finally:
            self._starting = False

    def _apply_refresh(self, refreshed: Any) -> None:
        # Explicit constructor settings win over the refreshed environment.
        if self._settings_overrides is None or not isinstance(refreshed, ServiceSettings):
            return
        self.settings = ServiceSettings.from_mapping(self._settings_overrides, base=refreshed)

    async def _run(self, trace: str) -> None:
        self._apply_refresh(self.configuration.refresh())
        for hook in (self.renderer, self.routing):
            if hook is not None:
                hook.include_builtin()

        attempt = StartupAttempt(budget=self.settings.tries)
        self.attempt = attempt
        self.extension_tasks = []
        try:
            await bind_with_retry(
                self,
                attempt,
                delay=self.settings.retry_delay,
                timeout=self.settings.bind_timeout,
            )
        except asyncio.CancelledError:
            self._transition(ServiceState.FAILED)
            raise
        except Exception as exc:
            self._transition(ServiceState.FAILED)
            human_log.human(
                "error",
                "service startup failed",
                service=self.key,
                attempts=attempt.attempts,
                error=human_reason(exc),
                trace=trace,
            )
            if isinstance(exc, PostBindError):
                if exc.phase == "security":
                    await self._release_scheduler()
                await self._release_listener()
            raise

        self._transition(ServiceState.STARTED)
        human_log.human("info", "service initialized", service=self.key, attempts=attempt.attempts)

        try:
            self.extension_tasks = await start_extensions(self, self.extensions, self.registry)
        except ExtensionStartupError as exc:
            healthmod.set_component("extensions", False)
            human_log.human(
                "error",
                "service extensions failed",
                service=self.key,
                extension=exc.key,
                failed=len(exc.failures),
            )
            raise
        healthmod.set_component("extensions", True)
        self._run_initializer()

    # ------------------------------------------------------------------
    def _run_initializer(self) -> None:
        """Invoke the user initializer; its outcome never affects ``start``."""

        if self.initialize is None:
            return
        try:
            result = self.initialize(self, self.application)
        except Exception:
            log.exception("service initializer failed", extra={"service": self.key})
            return
        if inspect.isawaitable(result):
            self.initializer_task = asyncio.ensure_future(result)
            self.initializer_task.add_done_callback(self._initializer_done)

    def _initializer_done(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "service initializer failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"service": self.key},
            )

    async def _release_listener(self) -> None:
        close = getattr(self.listener, "close", None)
        if close is None:
            return
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("listener cleanup failed", extra={"service": self.key})
        healthmod.set_component("listener", False)

    async def _release_scheduler(self) -> None:
        shutdown = getattr(self.scheduler, "shutdown", None)
        if shutdown is not None:
            try:
                result = shutdown()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("scheduler shutdown failed", extra={"service": self.key})
        healthmod.set_component("scheduler", False)

    async def stop(self) -> None:
        """Release the listener and scheduler and return to ``IDLE``."""

        if self.initializer_task is not None and not self.initializer_task.done():
            self.initializer_task.cancel()
        await self._release_listener()
        await self._release_scheduler()
        self._transition(ServiceState.IDLE)
        human_log.human("info", "service stopped", service=self.key)

    # ------------------------------------------------------------------
    def _owner(self, caller: Optional[str]) -> str:
        return f"{self.key} {caller}" if caller else f"internal {self.key} usage"

    def fetch_modules(self, path, caller: Optional[str] = None, **options: Any) -> list[str]:
        return fetch.fetch_modules(path, owner=self._owner(caller), **options)

    def fetch_files(self, paths, **options: Any) -> list[fetch.FileEntry]:
        return fetch.fetch_files(paths, owner=f"{self.key}.fetch_files", **options)

    def fetch_templates(self, paths, **options: Any) -> list[fetch.FileEntry]:
        return fetch.fetch_templates(paths, owner=f"{self.key}.fetch_templates", **options)
