from __future__ import annotations

# config/runtime.py
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_TRIES = 5
DEFAULT_RETRY_DELAY_SEC = 2.0
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 10000
DEFAULT_HEALTH_REFRESH_SEC = 30.0


def _coerce_int(value: Optional[str], fallback: int) -> int:
    try:
        if value is None:
            raise TypeError
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _coerce_float(value: Optional[str], fallback: Optional[float]) -> Optional[float]:
    try:
        if value is None or not str(value).strip():
            raise TypeError
        return float(value)
    except (TypeError, ValueError):
        return fallback


def get_env_name(default: str = "dev") -> str:
    return os.getenv("ENV_NAME", default)


def get_service_name(default: str = "service") -> str:
    return os.getenv("SERVICE_NAME", default)


def get_service_key(default: str = "main") -> str:
    return os.getenv("SERVICE_KEY", default)


def get_service_domain(default: str = "localhost") -> str:
    return os.getenv("SERVICE_DOMAIN", default)


def get_host(default: str = DEFAULT_HOST) -> str:
    value = (os.getenv("HOST") or "").strip()
    return value or default


def get_port(default: int = DEFAULT_PORT) -> int:
    """
    Returns the port the service listener binds to.
    Render/Heroku style $PORT; locally we fall back to 10000.
    """
    return _coerce_int(os.getenv("PORT"), default)


def get_startup_tries(default: int = DEFAULT_TRIES) -> int:
    """Bind attempts allowed before startup is treated as failed (minimum 1)."""

    return max(1, _coerce_int(os.getenv("STARTUP_TRIES"), default))


def get_retry_delay_sec(default: float = DEFAULT_RETRY_DELAY_SEC) -> float:
    value = _coerce_float(os.getenv("STARTUP_RETRY_DELAY_SEC"), default)
    return max(0.0, value if value is not None else default)


def get_bind_timeout_sec() -> Optional[float]:
    """
    Per-attempt bind timeout. Unset (the default) means an attempt runs
    until the listener itself succeeds or fails.
    """
    value = _coerce_float(os.getenv("STARTUP_BIND_TIMEOUT_SEC"), None)
    if value is None or value <= 0:
        return None
    return value


def get_health_refresh_sec(default: float = DEFAULT_HEALTH_REFRESH_SEC) -> float:
    value = _coerce_float(os.getenv("HEALTH_REFRESH_SEC"), default)
    if value is None or value <= 0:
        return default
    return value


def get_log_level(default: str = "INFO") -> str:
    return os.getenv("LOG_LEVEL", default).upper()


@dataclass(frozen=True)
class ServiceSettings:
    """Startup knobs for a single service."""

    tries: int = DEFAULT_TRIES
    retry_delay: float = DEFAULT_RETRY_DELAY_SEC
    bind_timeout: Optional[float] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if isinstance(self.tries, bool) or not isinstance(self.tries, int):
            raise ValueError(f"tries must be an integer, got {self.tries!r}")
        if self.tries < 1:
            raise ValueError(f"tries must be at least 1, got {self.tries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must not be negative, got {self.retry_delay}")
        if self.bind_timeout is not None and self.bind_timeout <= 0:
            raise ValueError(f"bind_timeout must be positive, got {self.bind_timeout}")

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        return cls(
            tries=get_startup_tries(),
            retry_delay=get_retry_delay_sec(),
            bind_timeout=get_bind_timeout_sec(),
            host=get_host(),
            port=get_port(),
        )

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any] | None, *, base: "ServiceSettings | None" = None
    ) -> "ServiceSettings":
        """Build settings from a ``{"tries": 3, ...}`` style mapping.

        Keys absent from ``data`` fall back to ``base`` (or the defaults).
        """

        base = base or cls()
        data = dict(data or {})
        return cls(
            tries=data.get("tries", base.tries),
            retry_delay=float(data.get("retry_delay", base.retry_delay)),
            bind_timeout=data.get("bind_timeout", base.bind_timeout),
            host=str(data.get("host", base.host)),
            port=int(data.get("port", base.port)),
        )
