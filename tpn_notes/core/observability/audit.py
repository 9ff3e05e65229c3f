"""
Validation audit trail: one JSON object per line, written through a
size-rotated file handler per resolved path.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from tpn_notes.settings import load_settings

_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5

_handlers: Dict[str, logging.Handler] = {}
_lock = threading.Lock()


def _handler_for(path: Path) -> logging.Handler:
    key = str(path.resolve())
    with _lock:
        handler = _handlers.get(key)
        if handler is None:
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                key, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            _handlers[key] = handler
    return handler


def close_handlers() -> None:
    with _lock:
        for handler in _handlers.values():
            handler.close()
        _handlers.clear()


def audit_event(
    event_type: str,
    actor: Optional[str],
    session_id: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
    audit_path: Optional[Path] = None,
) -> bool:
    """
    Append one record. With no explicit ``audit_path`` the configured path is
    used, and nothing is written (False) when auditing is switched off.
    """
    if audit_path is None:
        settings = load_settings()
        if not settings.audit_enabled:
            return False
        audit_path = Path(settings.audit_path)

    record: Dict[str, Any] = {
        "ts_ms": int(time.time() * 1000),
        "type": event_type,
        "actor": actor,
        "session_id": session_id,
    }
    if extra:
        record["extra"] = extra

    line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)
    _handler_for(audit_path).handle(
        logging.makeLogRecord({"name": "tpn.audit", "levelno": logging.INFO, "levelname": "INFO", "msg": line})
    )
    return True
