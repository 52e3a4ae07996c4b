"""Concrete runtime collaborators for a bootstrapped service process."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from string import Template
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from aiohttp import web

from config.runtime import get_env_name
from modules.bootstrap.errors import SecurityViolation
from modules.bootstrap.fetch import fetch_templates
from shared import health as healthmod
from shared.logging import get_trace_id, set_trace_id

log = logging.getLogger("svc.runtime")

SERVICE_KEY: web.AppKey[Any] = web.AppKey("service", object)
BUILTIN_TEMPLATES = Path(__file__).resolve().parent / "templates"

_NON_PROD_ENVS = {"dev", "development", "test", "qa", "stage", "local"}


def create_app(*, access_logger_name: str = "aiohttp.access") -> web.Application:
    """Create the aiohttp application with request tracing and access logs."""

    access_logger = logging.getLogger(access_logger_name)

    @web.middleware
    async def tracing_middleware(
        request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]
    ) -> web.StreamResponse:
        trace = set_trace_id(request.headers.get("X-Trace-Id"))
        started = time.perf_counter()
        status = 500
        try:
            response = await handler(request)
            status = getattr(response, "status", status)
            response.headers["X-Trace-Id"] = trace
            return response
        except web.HTTPException as exc:
            status = exc.status
            raise
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            access_logger.info(
                "http_request",
                extra={
                    "trace": trace,
                    "path": request.path,
                    "method": request.method,
                    "status": status,
                    "ms": duration_ms,
                },
            )

    return web.Application(middlewares=[tracing_middleware])


def _service_payload(request: web.Request) -> dict[str, Any]:
    service = request.app.get(SERVICE_KEY)
    payload: dict[str, Any] = {"env": get_env_name(), "trace": get_trace_id()}
    if service is not None:
        payload.update(
            {
                "service": service.key,
                "name": service.name,
                "version": service.version or "dev",
                "state": service.state.value,
                "initialized": service.initialized,
            }
        )
    return payload


class RouteTable:
    """Built-in HTTP routes mounted once on the service application."""

    def __init__(self, app: web.Application, *, renderer: "TemplateRenderer | None" = None) -> None:
        self.app = app
        self.renderer = renderer
        self.included = False

    def attach(self, service: Any) -> None:
        self.app[SERVICE_KEY] = service

    def include_builtin(self) -> None:
        if self.included:
            return
        router = self.app.router
        router.add_get("/", self._root)
        router.add_get("/ready", self._ready)
        router.add_get("/health", self._health)
        router.add_get("/healthz", self._healthz)
        if self.renderer is not None:
            router.add_get("/status", self._status)
        self.included = True
        log.info("web: built-in routes mounted", extra={"status_page": self.renderer is not None})

    async def _root(self, request: web.Request) -> web.Response:
        payload = _service_payload(request)
        payload["ok"] = True
        return web.json_response(payload)

    async def _ready(self, _: web.Request) -> web.Response:
        components = healthmod.components_snapshot()
        ok = healthmod.overall_ready()
        return web.json_response({"ok": ok, "components": components}, status=200 if ok else 503)

    async def _health(self, request: web.Request) -> web.Response:
        payload = _service_payload(request)
        components = healthmod.components_snapshot()
        components_ok = all(item.get("ok", False) for item in components.values())
        payload.update(
            {
                "ok": bool(payload.get("initialized") and components_ok),
                "components": components,
                "ready": healthmod.overall_ready(),
                "endpoint": "health",
            }
        )
        return web.json_response(payload, status=200 if payload["ok"] else 503)

    async def _healthz(self, request: web.Request) -> web.Response:
        payload = _service_payload(request)
        healthy = bool(payload.get("initialized"))
        payload.update({"ok": healthy, "endpoint": "healthz"})
        return web.json_response(payload, status=200 if healthy else 503)

    async def _status(self, request: web.Request) -> web.Response:
        assert self.renderer is not None
        payload = _service_payload(request)
        body = self.renderer.render("status.html", payload)
        return web.Response(text=body, content_type="text/html")


class AiohttpListener:
    """Binds an aiohttp application to ``host:port``."""

    def __init__(self, app: web.Application, *, host: str, port: int) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def listening(self) -> bool:
        return self._site is not None

    async def listen(self) -> None:
        if self._site is not None:
            return
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host=self.host, port=self.port)
        try:
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner
        self._site = site
        log.info("web server listening", extra={"host": self.host, "port": self.port})

    async def close(self) -> None:
        site, runner = self._site, self._runner
        self._site = None
        self._runner = None
        if site is not None:
            await site.stop()
        if runner is not None:
            await runner.cleanup()


class EnvironmentSecurityCheck:
    """Rejects startup when required secrets are missing or debug leaks into prod."""

    def __init__(self, required_env: Sequence[str] = ()) -> None:
        self.required_env = tuple(required_env)

    def check(self) -> None:
        problems = [
            f"missing required environment variable: {name}"
            for name in self.required_env
            if not (os.getenv(name) or "").strip()
        ]
        env = get_env_name().lower()
        debug = (os.getenv("DEBUG") or "").strip().lower() in {"1", "true", "yes", "on"}
        if debug and env not in _NON_PROD_ENVS:
            problems.append(f"DEBUG enabled in {env} environment")
        if problems:
            raise SecurityViolation(problems)
        log.info("security check passed", extra={"env": env, "required": len(self.required_env)})


class TemplateRenderer:
    """Keeps ``string.Template`` sources keyed by relative file name."""

    def __init__(self, paths: Iterable[str | Path] = ()) -> None:
        self.paths = [Path(p) for p in paths]
        self.templates: dict[str, Template] = {}
        self._builtin_loaded = False

    def include_builtin(self) -> None:
        if self._builtin_loaded:
            return
        self._load([BUILTIN_TEMPLATES])
        self._builtin_loaded = True

    def load(self) -> int:
        """Load user template directories; later entries override earlier ones."""

        if not self.paths:
            return 0
        return self._load(self.paths)

    def _load(self, paths: Sequence[Path]) -> int:
        entries = fetch_templates(list(paths), owner="renderer")
        for entry in entries:
            self.templates[entry.file_path] = Template(entry.content or "")
        log.debug("templates loaded", extra={"count": len(entries)})
        return len(entries)

    def render(self, name: str, context: dict[str, Any]) -> str:
        try:
            template = self.templates[name]
        except KeyError:
            raise KeyError(f"template not registered: {name}") from None
        return template.safe_substitute({key: str(value) for key, value in context.items()})


class _RecurringJob:
    """Runs an async job every ``interval`` seconds once the scheduler starts."""

    def __init__(self, scheduler: "Scheduler", *, interval: float, name: str | None = None) -> None:
        self._scheduler = scheduler
        self.interval = interval
        self.name = name
        self.runs = 0

    async def _loop(self, job: Callable[[], Awaitable[None]]) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("recurring job error", extra={"job_name": self.name})
            finally:
                self.runs += 1

    def do(self, job: Callable[[], Awaitable[None]]) -> "_RecurringJob":
        """Attach ``job``; it runs once the scheduler has been started."""

        self.name = self.name or getattr(job, "__name__", "recurring_job")
        self._scheduler._submit(lambda: self._loop(job), self.name)
        return self


class Scheduler:
    """Very small asyncio task supervisor for background jobs.

    Recurring jobs are held back until :meth:`start` and spawned again on
    every start, so a scheduler that was shut down can be restarted.
    """

    def __init__(self) -> None:
        self._tasks: list[asyncio.Task] = []
        self._jobs: list[tuple[Callable[[], Awaitable], Optional[str]]] = []
        self.running = False

    @property
    def tasks(self) -> list[asyncio.Task]:
        return list(self._tasks)

    def _submit(self, factory: Callable[[], Awaitable], name: Optional[str]) -> None:
        self._jobs.append((factory, name))
        if self.running:
            self.spawn(factory(), name=name)

    def start(self) -> int:
        """Spawn every recurring job; returns how many were started."""

        if self.running:
            return 0
        self.running = True
        for factory, name in self._jobs:
            self.spawn(factory(), name=name)
        log.info("scheduler started", extra={"jobs": len(self._jobs)})
        return len(self._jobs)

    def spawn(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name is not None:
            task.set_name(name)
        self._tasks.append(task)
        return task

    def every(
        self, *, minutes: float = 0.0, seconds: float = 0.0, name: str | None = None
    ) -> _RecurringJob:
        interval = float(minutes) * 60.0 + float(seconds)
        if interval <= 0:
            interval = 60.0
        return _RecurringJob(self, interval=interval, name=name)

    async def shutdown(self) -> None:
        self.running = False
        for task in self._tasks:
            if task.done():
                continue
            task.cancel()
        for task in self._tasks:
            if task.done():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # pragma: no cover - best-effort cleanup
                log.exception("scheduler task error during shutdown")
        self._tasks.clear()
