import asyncio
import logging

import pytest

from modules.bootstrap import BindRetriesExhausted, PostBindError, ServiceState
from modules.bootstrap import listen
from shared import health as healthmod
from shared.testing.fakes import FakeListener, FakeScheduler, FakeSecurity


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(listen, "_sleep", fake_sleep)
    return recorded


@pytest.mark.parametrize("tries", [1, 2, 3, 5])
def test_bind_succeeds_on_last_allowed_attempt(make_service, recorder, sleeps, tries):
    listener = FakeListener(recorder, failures=tries - 1)
    service = make_service(tries=tries, retry_delay=2.0, listener=listener)

    asyncio.run(service.start())

    assert listener.calls == tries
    assert sleeps == [2.0] * (tries - 1)
    assert service.initialized is True
    assert service.state is ServiceState.STARTED
    assert service.attempt is not None and service.attempt.attempts == tries


@pytest.mark.parametrize("tries", [1, 3, 5])
def test_bind_gives_up_after_budget(make_service, recorder, sleeps, tries):
    listener = FakeListener(recorder, always_fail=True)
    service = make_service(tries=tries, retry_delay=0.5, listener=listener)

    with pytest.raises(BindRetriesExhausted) as excinfo:
        asyncio.run(service.start())

    assert listener.calls == tries
    assert len(sleeps) == tries - 1
    err = excinfo.value
    assert err.attempts == tries
    assert isinstance(err.last_error, OSError)
    assert f"attempt {tries}" in str(err.last_error)
    assert err.__cause__ is err.last_error
    assert service.state is ServiceState.FAILED
    assert service.initialized is False
    assert recorder.count("scheduler") == 0
    assert recorder.count("security") == 0


def test_scheduler_fault_is_not_retried(make_service, recorder, sleeps):
    listener = FakeListener(recorder)
    scheduler = FakeScheduler(recorder, error=RuntimeError("scheduler down"))
    service = make_service(tries=5, listener=listener, scheduler=scheduler)

    with pytest.raises(PostBindError) as excinfo:
        asyncio.run(service.start())

    assert excinfo.value.phase == "scheduler"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert listener.calls == 1
    assert sleeps == []
    assert recorder.count("security") == 0
    assert listener.closed == 1
    assert service.initialized is False
    assert service.state is ServiceState.FAILED


def test_security_fault_fails_without_initializing(make_service, recorder, sleeps):
    listener = FakeListener(recorder)
    security = FakeSecurity(recorder, error=PermissionError("posture"))
    service = make_service(listener=listener, security=security)

    with pytest.raises(PostBindError) as excinfo:
        asyncio.run(service.start())

    assert excinfo.value.phase == "security"
    assert listener.calls == 1
    assert recorder.count("scheduler") == 1
    assert service.initialized is False
    assert healthmod.components_snapshot()["security"]["ok"] is False


def test_refresh_happens_before_first_bind_for_every_run(make_service, recorder, sleeps):
    listener = FakeListener(recorder, failures=2)
    service = make_service(tries=3, listener=listener)

    asyncio.run(service.start())

    assert recorder.events[:3] == ["refresh", "include:renderer", "include:routing"]
    assert recorder.events[3:] == ["listen", "listen", "listen", "scheduler", "security"]
    assert recorder.count("refresh") == 1


def test_bind_attempt_timeout_counts_as_failure(make_service, recorder, sleeps):
    class SlowListener(FakeListener):
        async def listen(self) -> None:
            self.calls += 1
            if self.calls == 1:
                await asyncio.sleep(10)

    listener = SlowListener(recorder)
    service = make_service(tries=2, listener=listener, bind_timeout=0.01)

    asyncio.run(service.start())

    assert listener.calls == 2
    assert len(sleeps) == 1
    assert service.initialized is True


def test_bind_attempts_are_logged_with_service_key(make_service, recorder, sleeps, caplog):
    caplog.set_level(logging.INFO, logger="svc")
    listener = FakeListener(recorder, failures=1)
    service = make_service(tries=2, listener=listener)

    asyncio.run(service.start())

    starting = [r for r in caplog.records if r.getMessage() == "service starting"]
    assert [r.attempt for r in starting] == [1, 2]
    assert all(r.service == "example" for r in starting)
    assert all(r.host == "127.0.0.1" and r.port == 18080 for r in starting)

    failed = [r for r in caplog.records if r.getMessage() == "service bind failed"]
    assert len(failed) == 1
    assert failed[0].remaining == 1
    assert "OSError" in failed[0].error

    assert any(r.getMessage() == "service initialized" for r in caplog.records)
