"""Typed registry of service extensions."""

from __future__ import annotations

import importlib
import inspect
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from modules.bootstrap.service import Service

log = logging.getLogger("svc.extensions")

__all__ = ["ExtensionHandle", "ExtensionRegistry"]


class ExtensionHandle:
    """Wraps an extension instance behind an explicit ``start`` capability."""

    __slots__ = ("key", "instance")

    def __init__(self, key: str, instance: Any) -> None:
        self.key = key
        self.instance = instance

    def has_start(self) -> bool:
        return self.instance is not None and callable(getattr(self.instance, "start", None))

    async def start(self, service: "Service", settings: Any) -> None:
        if not self.has_start():
            raise TypeError(f"extension '{self.key}' has no start capability")
        result = self.instance.start(service, settings)
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        return f"ExtensionHandle(key={self.key!r}, instance={self.instance!r})"


class ExtensionRegistry:
    """Maps extension keys to handles; lookups of unknown keys return ``None``."""

    def __init__(self) -> None:
        self._handles: Dict[str, ExtensionHandle] = {}

    def register(self, key: str, instance: Any) -> ExtensionHandle:
        if not key:
            raise ValueError("extension key must be a non-empty string")
        handle = ExtensionHandle(key, instance)
        if key in self._handles:
            log.warning("extension replaced", extra={"extension": key})
        self._handles[key] = handle
        return handle

    def load_module(self, key: str, module_path: str) -> ExtensionHandle:
        """Import ``module_path`` and register it under ``key``.

        A module exposing an ``extension`` attribute registers that object;
        otherwise the module itself is the instance (a module level
        ``async def start(service, settings)`` makes it startable).
        """

        try:
            module = importlib.import_module(module_path)
        except Exception:
            log.exception(
                "failed to import extension module",
                extra={"extension": key, "extension_module": module_path},
            )
            raise
        instance = getattr(module, "extension", module)
        handle = self.register(key, instance)
        log.info(
            "extension module registered",
            extra={
                "extension": key,
                "extension_module": module_path,
                "startable": handle.has_start(),
            },
        )
        return handle

    def get(self, key: str) -> Optional[ExtensionHandle]:
        return self._handles.get(key)

    def keys(self) -> list[str]:
        return list(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[str]:
        return iter(self._handles)
