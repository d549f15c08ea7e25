from __future__ import annotations

import os
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QStandardPaths

from .constants import (
    APP_NAME,
    APP_ORG,
    DATA_DIR_ENV,
    DB_FILE_NAME,
    LOG_DIR_ENV,
    REUSE_NUMBERS_ENV,
)

_TRUTHY = {"1", "true", "yes", "on"}


def data_dir() -> Path:
    """
    User-writable directory holding the database file.

    Resolution order:
      1. $KHATA_ERP_DATA_DIR
      2. Qt's AppDataLocation for this application
      3. ~/.khata_erp
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    if not QCoreApplication.applicationName():
        QCoreApplication.setOrganizationName(APP_ORG)
        QCoreApplication.setApplicationName(APP_NAME)
    location = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
    if location:
        return Path(location)
    return Path.home() / ".khata_erp"


def db_path() -> Path:
    path = data_dir() / DB_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_dir() -> Path:
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return data_dir() / "logs"


def reuse_freed_numbers() -> bool:
    """Whether numbers of deleted invoices/quick sales are handed out again."""
    return os.environ.get(REUSE_NUMBERS_ENV, "").strip().lower() in _TRUTHY
