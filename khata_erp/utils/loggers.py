"""
Logging helpers.

Public API
----------
- get_logger(name) -> logging.Logger           console logger, one handler per name
- get_audit_logger(file_path=None) -> Logger   JSON-lines ledger audit trail
- reset_audit_logger()                          drop the audit handlers (log dir changed)
- log_event(logger, op, phase, message, extra) structured audit line
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

__all__ = ["get_logger", "get_audit_logger", "reset_audit_logger", "log_event"]

_AUDIT_LOGGER_NAME = "khata_erp.audit"
_AUDIT_FILE_NAME = "ledger_audit.log"
_AUDIT_TAG = "_khata_audit"


def get_logger(name: str = "khata_erp") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    {"ts":"2025-09-16T12:00:01.123Z","level":"WARNING","name":"khata_erp.audit","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    setattr(handler, _AUDIT_TAG, True)
    logger.addHandler(handler)


def reset_audit_logger() -> None:
    """Detach and close the audit handlers so the next call reopens the log file."""
    logger = logging.getLogger(_AUDIT_LOGGER_NAME)
    for h in list(logger.handlers):
        if getattr(h, _AUDIT_TAG, False):
            logger.removeHandler(h)
            h.close()


def get_audit_logger(file_path: Optional[str | Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Logger writing JSON lines to <log_dir>/ledger_audit.log, mirrored to stderr
    at WARNING and above. Reuses the same handlers across calls.
    """
    logger = logging.getLogger(_AUDIT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # only our own handlers count; test harnesses may attach capture handlers
    if any(getattr(h, _AUDIT_TAG, False) for h in logger.handlers):
        return logger

    if file_path is None:
        from ..config import log_dir
        file_path = log_dir() / _AUDIT_FILE_NAME
    log_file = Path(file_path)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    except OSError:
        # read-only location: stderr only
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(_JsonLineFormatter())
        _attach(logger, sh)
        return logger

    fh.setLevel(level)
    fh.setFormatter(_JsonLineFormatter())
    _attach(logger, fh)

    sh = logging.StreamHandler()
    sh.setLevel(logging.WARNING)
    sh.setFormatter(_JsonLineFormatter())
    _attach(logger, sh)
    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured audit line.

    Args:
        logger: Obtained from get_audit_logger().
        op: Operation name, e.g. "invoice.update" or "sequence.pool".
        phase: Phase within the operation, e.g. "mirror" or "check".
        message: Human-readable short message.
        extra: Optional additional key/values (ids, amounts).
        level: Logging level (default INFO).
    """
    payload = {"op": op, "phase": phase}
    if extra:
        payload.update(extra)
    logger.log(level, message, extra={"extra_payload": payload})
