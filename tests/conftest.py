"""Pytest configuration for shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import pytest


def _ensure_project_root_on_path(source_file: Path) -> None:
    """Add the repository root to ``sys.path`` when running from subpackages."""

    for candidate in [source_file.parent, *source_file.parents]:
        shared_dir = candidate / "shared"
        if shared_dir.is_dir():
            project_root = str(candidate)
            if project_root not in sys.path:
                sys.path.insert(0, project_root)
            break


_ensure_project_root_on_path(Path(__file__).resolve())

from shared.testing.environment import apply_required_test_environment

apply_required_test_environment()

from modules.bootstrap import ExtensionRegistry, Service
from shared.testing.fakes import (
    FakeConfiguration,
    FakeIncludable,
    FakeListener,
    FakeScheduler,
    FakeSecurity,
    Recorder,
)
from shared import health as healthmod


@pytest.fixture(autouse=True)
def _reset_health() -> Iterable[None]:
    healthmod.reset()
    yield
    healthmod.reset()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_service(recorder: Recorder) -> Callable[..., Service]:
    """Build a :class:`Service` wired to in-memory collaborators."""

    def _build(
        *,
        tries: int = 5,
        retry_delay: float = 0.0,
        listener: FakeListener | None = None,
        scheduler: FakeScheduler | None = None,
        security: FakeSecurity | None = None,
        extensions: Mapping[str, Any] | None = None,
        registry: ExtensionRegistry | None = None,
        initialize: Callable[..., Any] | None = None,
        **settings: Any,
    ) -> Service:
        return Service(
            {
                "domain": "example.test",
                "name": "Example",
                "key": "example",
                "version": "1.0.0",
                "settings": {"tries": tries, "retry_delay": retry_delay, **settings},
                "extensions": dict(extensions or {}),
            },
            listener=listener or FakeListener(recorder),
            scheduler=scheduler or FakeScheduler(recorder),
            security=security or FakeSecurity(recorder),
            configuration=FakeConfiguration(recorder),
            registry=registry,
            renderer=FakeIncludable(recorder, "renderer"),
            routing=FakeIncludable(recorder, "routing"),
            initialize=initialize,
        )

    return _build
