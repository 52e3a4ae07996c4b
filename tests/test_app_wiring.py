import asyncio

import pytest

import app
from modules.bootstrap import Service
from modules.common import runtime as rt
from shared import health as healthmod
from shared.testing.fakes import FakeListener


def test_parse_extension_spec():
    args = app.build_parser().parse_args(["--extension", "audit=exts.audit", "--tries", "3"])
    assert args.extension == [("audit", "exts.audit")]
    assert args.tries == 3

    with pytest.raises(SystemExit):
        app.build_parser().parse_args(["--extension", "broken"])


def test_build_service_wires_runtime_collaborators(monkeypatch):
    monkeypatch.setenv("SERVICE_KEY", "wired")
    monkeypatch.setenv("PORT", "9001")
    args = app.build_parser().parse_args(["--host", "127.0.0.1", "--tries", "2"])

    service = app.build_service(args)

    assert isinstance(service, Service)
    assert service.key == "wired"
    assert service.settings.tries == 2
    assert isinstance(service.listener, rt.AiohttpListener)
    assert (service.listener.host, service.listener.port) == ("127.0.0.1", 9001)
    assert isinstance(service.scheduler, rt.Scheduler)
    assert isinstance(service.routing, rt.RouteTable)
    assert service.routing.app[rt.SERVICE_KEY] is service


def test_serve_returns_error_code_when_startup_fails(make_service, recorder):
    service = make_service(tries=1, listener=FakeListener(recorder, always_fail=True))

    assert asyncio.run(app.serve(service)) == 1


def test_serve_runs_until_stopped(make_service, recorder):
    listener = FakeListener(recorder)
    service = make_service(listener=listener)

    async def runner() -> int:
        stop = asyncio.Event()
        task = asyncio.create_task(app.serve(service, stop))
        await asyncio.sleep(0.01)
        assert service.initialized is True
        stop.set()
        return await task

    assert asyncio.run(runner()) == 0
    assert listener.closed == 1


def test_health_refresh_job_tracks_listener(monkeypatch):
    monkeypatch.setenv("HEALTH_REFRESH_SEC", "0.005")
    service = app.build_service(app.build_parser().parse_args([]))

    async def runner() -> None:
        healthmod.set_component("listener", True)
        assert service.scheduler.start() == 1
        await asyncio.sleep(0.05)
        await service.scheduler.shutdown()

    asyncio.run(runner())
    assert service.listener.listening is False
    assert healthmod.components_snapshot()["listener"]["ok"] is False


def test_build_service_refreshes_budget_from_environment(monkeypatch):
    monkeypatch.delenv("STARTUP_TRIES", raising=False)
    service = app.build_service(app.build_parser().parse_args([]))
    monkeypatch.setenv("STARTUP_TRIES", "4")

    service._apply_refresh(service.configuration.refresh())

    assert service.settings.tries == 4
