"""Environment-backed configuration source refreshed at the start of each run."""

from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from config.runtime import ServiceSettings

log = logging.getLogger("svc.config")

__all__ = ["RuntimeConfiguration"]

_DEFAULT_PREFIXES = ("SERVICE_", "STARTUP_", "ENV_NAME", "HOST", "PORT", "LOG_LEVEL")


class RuntimeConfiguration:
    """Snapshot of the process environment plus static overrides."""

    def __init__(
        self,
        overrides: Mapping[str, Any] | None = None,
        *,
        prefixes: Iterable[str] = _DEFAULT_PREFIXES,
    ) -> None:
        self._overrides = dict(overrides or {})
        self._prefixes = tuple(prefixes)
        self._values: Mapping[str, Any] = MappingProxyType({})
        self._settings: Optional[ServiceSettings] = None
        self.refresh_count = 0

    @property
    def values(self) -> Mapping[str, Any]:
        return self._values

    @property
    def settings(self) -> ServiceSettings:
        if self._settings is None:
            self.refresh()
        assert self._settings is not None
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def refresh(self) -> ServiceSettings:
        values: dict[str, Any] = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(self._prefixes)
        }
        values.update(self._overrides)
        self._values = MappingProxyType(values)
        self._settings = ServiceSettings.from_env()
        self.refresh_count += 1
        log.debug(
            "configuration refreshed",
            extra={"keys": len(values), "refresh_count": self.refresh_count},
        )
        return self._settings
