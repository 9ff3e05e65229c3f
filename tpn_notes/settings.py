"""
Runtime configuration.

All knobs are environment variables (TPN_* prefix). Values are read once per
call to load_settings(); callers that need to react to env changes in tests
should call it again rather than caching the module-level default.

    TPN_ENV                       dev | prod (default dev)
    TPN_HOST / TPN_PORT           uvicorn bind address
    TPN_EVAL_TIMEOUT_SECONDS      wall-clock bound per dynamic segment (1.0)
    TPN_EVAL_MAX_STEPS            interpreter step budget per segment (200000)
    TPN_EXTENSION_CACHE_SIZE      compiled program cache entries (256)
    TPN_SESSION_MAX               live editing sessions kept in memory (1000)
    TPN_SESSION_IDLE_SECONDS      idle time before a session is dropped (3600)
    TPN_REFERENCE_RANGES_FILE     YAML/JSON reference range overrides
    TPN_AUDIT_PATH                validation audit log (.tpn/audit.log)
    TPN_AUDIT_ENABLED             1/0 (default 1)
    TPN_SECURITY_HEADERS_ENABLED  defaults to on in prod
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_log = logging.getLogger("tpn.config")

_TRUTHY = ("1", "true", "yes", "on")


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        _log.warning("Ignoring non-integer %s=%r (using %d)", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        _log.warning("Ignoring non-numeric %s=%r (using %s)", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    host: str = "0.0.0.0"
    port: int = 8001
    eval_timeout_seconds: float = 1.0
    eval_max_steps: int = 200_000
    extension_cache_size: int = 256
    session_max: int = 1000
    session_idle_seconds: float = 3600.0
    reference_ranges_file: Optional[Path] = None
    audit_path: Path = Path(".tpn") / "audit.log"
    audit_enabled: bool = True
    security_headers_enabled: bool = False

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"


def load_settings() -> Settings:
    env = _env_str("TPN_ENV", "dev").lower()
    ranges_file = _env_str("TPN_REFERENCE_RANGES_FILE", "")

    return Settings(
        env=env,
        host=_env_str("TPN_HOST", "0.0.0.0"),
        port=_env_int("TPN_PORT", 8001),
        eval_timeout_seconds=max(0.01, _env_float("TPN_EVAL_TIMEOUT_SECONDS", 1.0)),
        eval_max_steps=max(1000, _env_int("TPN_EVAL_MAX_STEPS", 200_000)),
        extension_cache_size=max(1, _env_int("TPN_EXTENSION_CACHE_SIZE", 256)),
        session_max=max(1, _env_int("TPN_SESSION_MAX", 1000)),
        session_idle_seconds=max(1.0, _env_float("TPN_SESSION_IDLE_SECONDS", 3600.0)),
        reference_ranges_file=Path(ranges_file) if ranges_file else None,
        audit_path=Path(_env_str("TPN_AUDIT_PATH", str(Path(".tpn") / "audit.log"))),
        audit_enabled=_env_bool("TPN_AUDIT_ENABLED", True),
        security_headers_enabled=_env_bool("TPN_SECURITY_HEADERS_ENABLED", env == "prod"),
    )
