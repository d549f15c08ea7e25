"""
Qt-facing entry point to the operation registry.

Views call `invoke(channel, payload)` and get the structured result back
synchronously. After every successful write `dataChanged(entity)` fires so
open lists can re-query; failures fire `operationFailed(channel, message)`.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, Optional

from PySide6.QtCore import QObject, Signal

from .handlers import Registry, build_registry


class LedgerBridge(QObject):
    dataChanged = Signal(str)            # entity name, e.g. "invoices"
    operationFailed = Signal(str, str)   # channel, error message

    def __init__(
        self,
        conn: sqlite3.Connection,
        registry: Optional[Registry] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._conn = conn
        self._registry = registry or build_registry(conn)

    @property
    def registry(self) -> Registry:
        return self._registry

    def channels(self) -> list[str]:
        return self._registry.channels()

    def invoke(self, channel: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = self._registry.invoke(channel, payload)
        if result.get("success"):
            op = self._registry.operation(channel)
            if op is not None and op.writes:
                self.dataChanged.emit(op.entity)
        else:
            self.operationFailed.emit(channel, result.get("error") or "")
        return result

    def close(self) -> None:
        self._conn.close()
