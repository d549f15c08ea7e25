# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures)
# - Every test gets its own SQLite file under tmp_path, built through
#   get_connection() so schema + migrations run exactly as at startup
# - Data/log directories are redirected to tmp_path; the audit logger
#   is reset so it never writes outside the test's directory
# ---------------------------------------------------------------------

from __future__ import annotations

import os

# headless CI has no display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from khata_erp.database import get_connection
from khata_erp.database.repositories import CustomersRepo, SequenceAllocator, SuppliersRepo
from khata_erp.utils.loggers import reset_audit_logger


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setenv("KHATA_ERP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("KHATA_ERP_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("KHATA_ERP_REUSE_FREED_NUMBERS", raising=False)
    reset_audit_logger()
    yield
    reset_audit_logger()


@pytest.fixture()
def db_file(tmp_path):
    return tmp_path / "erp.db"


@pytest.fixture()
def conn(db_file):
    con = get_connection(db_file)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def seq(conn):
    """Allocator with the reuse pool off (the default)."""
    return SequenceAllocator(conn, reuse_freed=False)


@pytest.fixture()
def customer(conn) -> str:
    return CustomersRepo(conn).create("C-1", "Ramesh Traders", "Main Bazar", "9800000001")


@pytest.fixture()
def supplier(conn) -> str:
    return SuppliersRepo(conn).create("S-1", "Sharma Wholesale", "Market Yard", "9800000002")
