import sqlite3

import pytest

from khata_erp.database import get_connection
from khata_erp.database.migrations import MIGRATIONS, has_run, run_guarded_migration
from khata_erp.database.repositories import SequenceAllocator
from khata_erp.database.schema import ensure_schema


def _raw(db_file) -> sqlite3.Connection:
    con = sqlite3.connect(db_file, isolation_level=None)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


def test_fresh_database_has_tables_sequences_and_migration_records(conn):
    tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    for t in ("products", "customers", "suppliers", "invoices", "invoice_items",
              "customer_orders", "supplier_orders", "quick_sales",
              "customer_maal_account", "customer_jama_account",
              "supplier_maal_account", "supplier_jama_account",
              "document_sequences", "reusable_invoice_numbers", "migration_history"):
        assert t in tables

    seqs = {r["doc_type"]: r["last_number"] for r in conn.execute("SELECT * FROM document_sequences")}
    assert seqs == {"invoice": 0, "customer_order": 0, "supplier_order": 0, "quick_sale": 0}

    recorded = {r["migration_name"] for r in conn.execute("SELECT migration_name FROM migration_history")}
    assert recorded == {name for name, _ in MIGRATIONS}


def test_ensure_schema_is_idempotent_and_keeps_data(conn, customer):
    ensure_schema(conn)
    ensure_schema(conn)
    assert conn.execute("SELECT name FROM customers WHERE customer_id='C-1'").fetchone()["name"] == "Ramesh Traders"
    assert conn.execute("SELECT COUNT(*) FROM document_sequences").fetchone()[0] == 4


def test_old_products_table_gets_is_deleted_column(db_file):
    raw = _raw(db_file)
    raw.execute(
        "CREATE TABLE products (code TEXT PRIMARY KEY, name TEXT NOT NULL, size TEXT, "
        "cost_price REAL, selling_price REAL, packing_type TEXT)"
    )
    raw.execute("INSERT INTO products(code, name) VALUES ('sami-1', 'Sami')")
    raw.close()

    con = get_connection(db_file)
    try:
        cols = {r[1] for r in con.execute("PRAGMA table_info(products)")}
        assert "is_deleted" in cols
        row = con.execute("SELECT name, is_deleted FROM products WHERE code='sami-1'").fetchone()
        assert (row["name"], row["is_deleted"]) == ("Sami", 0)
    finally:
        con.close()


def test_guarded_migration_runs_once(conn):
    calls = []

    def action(c):
        calls.append(1)
        c.execute("INSERT INTO customers(customer_id, name) VALUES ('M-1', 'Migrated')")

    assert run_guarded_migration(conn, "demo_v1", action) is True
    assert run_guarded_migration(conn, "demo_v1", action) is False
    assert calls == [1]
    assert has_run(conn, "demo_v1")


def test_failed_migration_leaves_no_record_and_no_writes(conn):
    def boom(c):
        c.execute("INSERT INTO customers(customer_id, name) VALUES ('M-2', 'Half done')")
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_guarded_migration(conn, "broken_v1", boom)

    assert not has_run(conn, "broken_v1")
    assert conn.execute("SELECT 1 FROM customers WHERE customer_id='M-2'").fetchone() is None


def test_sequence_reconciliation_counts_legacy_and_maal_only_numbers(db_file):
    raw = _raw(db_file)
    ensure_schema(raw)
    raw.execute("INSERT INTO customers(customer_id, name) VALUES ('C-1', 'Old Customer')")
    raw.execute("INSERT INTO invoices(invoice_id, customer_id, invoice_date) VALUES ('AGS-I-7', 'C-1', '2023-03-01')")
    raw.execute("INSERT INTO invoices(invoice_id, customer_id, invoice_date) VALUES ('E-3', 'C-1', '2024-01-01')")
    raw.execute(
        "INSERT INTO customer_maal_account(customer_id, maal_date, maal_invoice_no, maal_amount) "
        "VALUES ('C-1', '2024-01-02', 'E-9', 50)"
    )
    raw.execute("INSERT INTO customer_orders(order_id, customer_id, order_date) VALUES ('O-C-4', 'C-1', '2024-01-01')")
    raw.close()

    con = get_connection(db_file)
    try:
        alloc = SequenceAllocator(con, reuse_freed=False)
        assert alloc.next_id("invoice") == "E-10"
        assert alloc.next_id("customer_order") == "O-C-5"
        assert alloc.next_id("supplier_order") == "O-S-1"
    finally:
        con.close()


def test_reconciliation_is_not_repeated_on_later_startups(db_file):
    con = get_connection(db_file)
    con.execute("INSERT INTO customers(customer_id, name) VALUES ('C-1', 'A')")
    con.execute("INSERT INTO invoices(invoice_id, customer_id, invoice_date) VALUES ('E-50', 'C-1', '2024-01-01')")
    con.close()

    con = get_connection(db_file)
    try:
        # the sequence, not the stored ids, decides the next number
        assert SequenceAllocator(con, reuse_freed=False).peek_next_id("invoice") == "E-1"
    finally:
        con.close()
