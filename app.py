from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from config.runtime import (
    ServiceSettings,
    get_env_name,
    get_health_refresh_sec,
    get_log_level,
    get_service_domain,
    get_service_key,
    get_service_name,
)
from modules.bootstrap import ExtensionRegistry, RuntimeConfiguration, Service, StartupError
from modules.common.runtime import (
    AiohttpListener,
    EnvironmentSecurityCheck,
    RouteTable,
    Scheduler,
    TemplateRenderer,
    create_app,
)
from shared import health as healthmod
from shared.logging import setup_logging

log = logging.getLogger("svc.app")

REQUIRED_ENV = ("SERVICE_SECRET",)


def _parse_extension(spec: str) -> tuple[str, str]:
    key, sep, module_path = spec.partition("=")
    if not sep or not key.strip() or not module_path.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=module.path, got {spec!r}")
    return key.strip(), module_path.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Start a bootstrapped service.")
    parser.add_argument("--host", help="Override HOST")
    parser.add_argument("--port", type=int, help="Override PORT")
    parser.add_argument("--tries", type=int, help="Override STARTUP_TRIES")
    parser.add_argument(
        "--extension",
        action="append",
        default=[],
        type=_parse_extension,
        metavar="KEY=MODULE",
        help="Register and start an extension module (repeatable)",
    )
    parser.add_argument(
        "--templates",
        action="append",
        default=[],
        metavar="DIR",
        help="Additional template directory (repeatable)",
    )
    return parser


def build_service(args: argparse.Namespace) -> Service:
    """Wire the concrete collaborators into a :class:`Service`."""

    overrides = {
        key: value
        for key, value in (("host", args.host), ("port", args.port), ("tries", args.tries))
        if value is not None
    }
    settings = ServiceSettings.from_mapping(overrides, base=ServiceSettings.from_env())

    registry = ExtensionRegistry()
    extensions = {}
    for key, module_path in args.extension:
        registry.load_module(key, module_path)
        extensions[key] = {"module": module_path}

    renderer = TemplateRenderer(args.templates)
    app = create_app()
    routing = RouteTable(app, renderer=renderer)
    listener = AiohttpListener(app, host=settings.host, port=settings.port)

    async def refresh_listener_health() -> None:
        healthmod.set_component("listener", listener.listening)

    scheduler = Scheduler()
    scheduler.every(seconds=get_health_refresh_sec(), name="health-refresh").do(
        refresh_listener_health
    )

    service = Service(
        {
            "domain": get_service_domain(),
            "name": get_service_name(),
            "key": get_service_key(),
            "settings": overrides,
            "extensions": extensions,
        },
        listener=listener,
        scheduler=scheduler,
        security=EnvironmentSecurityCheck(REQUIRED_ENV),
        configuration=RuntimeConfiguration(),
        registry=registry,
        renderer=renderer,
        routing=routing,
        initialize=lambda svc, _application: renderer.load(),
    )
    routing.attach(service)
    return service


async def serve(service: Service, stop_event: Optional[asyncio.Event] = None) -> int:
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await service.start()
    except StartupError as exc:
        log.error("startup aborted", extra={"service": service.key, "error": str(exc)})
        await service.stop()
        return 1

    try:
        await stop_event.wait()
    finally:
        await service.stop()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level=get_log_level(),
        static_fields={"env": get_env_name(), "service": get_service_key()},
    )
    healthmod.reset()
    service = build_service(args)
    return asyncio.run(serve(service))


if __name__ == "__main__":
    sys.exit(main())
