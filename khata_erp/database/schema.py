from pathlib import Path
import logging
import sqlite3
import sys

from ..constants import DOC_PREFIXES

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== MASTER DATA ======================== */

/* -------- price list -------- */
CREATE TABLE IF NOT EXISTS products (
    code           TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    size           TEXT,
    cost_price     REAL,
    selling_price  REAL,
    packing_type   TEXT,
    /* added via migration for old DBs; present by default for new DBs */
    is_deleted     INTEGER NOT NULL DEFAULT 0 CHECK (is_deleted IN (0,1))
);

/* -------- parties (same shape per role) -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    address     TEXT,
    mobile      TEXT
);

CREATE TABLE IF NOT EXISTS suppliers (
    supplier_id TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    address     TEXT,
    mobile      TEXT
);

/* ======================== INVOICES ======================== */
CREATE TABLE IF NOT EXISTS invoices (
    invoice_id   TEXT PRIMARY KEY,
    customer_id  TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    remark       TEXT,
    packing      REAL NOT NULL DEFAULT 0.0,
    freight      REAL NOT NULL DEFAULT 0.0,
    riksha       REAL NOT NULL DEFAULT 0.0,
    /* denormalized: sum(quantity*selling_price) + packing + freight + riksha */
    grand_total  REAL NOT NULL DEFAULT 0.0,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id);

CREATE TABLE IF NOT EXISTS invoice_items (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id    TEXT NOT NULL,
    product_code  TEXT NOT NULL,
    quantity      REAL NOT NULL CHECK (quantity > 0),
    /* price snapshot at invoice time */
    selling_price REAL NOT NULL,
    FOREIGN KEY (invoice_id)   REFERENCES invoices(invoice_id),
    FOREIGN KEY (product_code) REFERENCES products(code)
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);
CREATE INDEX IF NOT EXISTS idx_invoice_items_product ON invoice_items(product_code);

/* ======================== ORDERS ======================== */
/* placed BY customers (we fulfil them) */
CREATE TABLE IF NOT EXISTS customer_orders (
    order_id    TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    order_date  TEXT NOT NULL,
    remark      TEXT,
    status      TEXT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);

CREATE TABLE IF NOT EXISTS customer_order_items (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id     TEXT NOT NULL,
    product_code TEXT NOT NULL,
    quantity     REAL NOT NULL CHECK (quantity > 0),
    FOREIGN KEY (order_id)     REFERENCES customer_orders(order_id),
    FOREIGN KEY (product_code) REFERENCES products(code)
);
CREATE INDEX IF NOT EXISTS idx_customer_order_items_order ON customer_order_items(order_id);

/* placed TO suppliers (we are the buyer) */
CREATE TABLE IF NOT EXISTS supplier_orders (
    order_id    TEXT PRIMARY KEY,
    supplier_id TEXT NOT NULL,
    order_date  TEXT NOT NULL,
    remark      TEXT,
    status      TEXT,
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id)
);

CREATE TABLE IF NOT EXISTS supplier_order_items (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id     TEXT NOT NULL,
    product_code TEXT NOT NULL,
    quantity     REAL NOT NULL CHECK (quantity > 0),
    FOREIGN KEY (order_id)     REFERENCES supplier_orders(order_id),
    FOREIGN KEY (product_code) REFERENCES products(code)
);
CREATE INDEX IF NOT EXISTS idx_supplier_order_items_order ON supplier_order_items(order_id);

/* ======================== QUICK SALES (walk-in, no party) ======================== */
CREATE TABLE IF NOT EXISTS quick_sales (
    qs_id   TEXT PRIMARY KEY,
    qs_date TEXT NOT NULL,
    total   REAL NOT NULL DEFAULT 0,
    remark  TEXT
);

CREATE TABLE IF NOT EXISTS quick_sale_items (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    qs_id         TEXT NOT NULL,
    product_code  TEXT NOT NULL,
    quantity      REAL NOT NULL CHECK (quantity > 0),
    selling_price REAL NOT NULL,
    FOREIGN KEY (qs_id)        REFERENCES quick_sales(qs_id),
    FOREIGN KEY (product_code) REFERENCES products(code)
);
CREATE INDEX IF NOT EXISTS idx_quick_sale_items_qs ON quick_sale_items(qs_id);

/* ======================== PARTY LEDGERS ======================== */
/* maal = goods (debit side); a row per invoice, or maal-only */
CREATE TABLE IF NOT EXISTS customer_maal_account (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id     TEXT NOT NULL,
    maal_date       TEXT NOT NULL,
    maal_invoice_no TEXT,
    maal_amount     REAL NOT NULL,
    maal_remark     TEXT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_customer_maal_customer ON customer_maal_account(customer_id);
CREATE INDEX IF NOT EXISTS idx_customer_maal_invoice  ON customer_maal_account(maal_invoice_no);

/* jama = payments (credit side) */
CREATE TABLE IF NOT EXISTS customer_jama_account (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id   TEXT NOT NULL,
    jama_date     TEXT NOT NULL,
    jama_txn_type TEXT NOT NULL,
    jama_amount   REAL NOT NULL,
    jama_remark   TEXT,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_customer_jama_customer ON customer_jama_account(customer_id);

CREATE TABLE IF NOT EXISTS supplier_maal_account (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id     TEXT NOT NULL,
    maal_date       TEXT NOT NULL,
    maal_invoice_no TEXT,
    maal_amount     REAL NOT NULL,
    maal_remark     TEXT,
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id)
);
CREATE INDEX IF NOT EXISTS idx_supplier_maal_supplier ON supplier_maal_account(supplier_id);

CREATE TABLE IF NOT EXISTS supplier_jama_account (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id   TEXT NOT NULL,
    jama_date     TEXT NOT NULL,
    jama_txn_type TEXT NOT NULL,
    jama_amount   REAL NOT NULL,
    jama_remark   TEXT,
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id)
);
CREATE INDEX IF NOT EXISTS idx_supplier_jama_supplier ON supplier_jama_account(supplier_id);

/* ======================== BOOKKEEPING ======================== */
CREATE TABLE IF NOT EXISTS migration_history (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    migration_name TEXT NOT NULL UNIQUE,
    executed_at    TEXT NOT NULL
);

/* highest number ever issued per document type */
CREATE TABLE IF NOT EXISTS document_sequences (
    doc_type    TEXT PRIMARY KEY,
    last_number INTEGER NOT NULL CHECK (last_number >= 0)
);

/* numbers freed by deletion (consumed only when reuse is enabled) */
CREATE TABLE IF NOT EXISTS reusable_invoice_numbers (
    invoice_number INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS reusable_quick_sale_numbers (
    qs_number INTEGER PRIMARY KEY
);
"""


def _ensure_products_is_deleted(conn: sqlite3.Connection) -> None:
    """
    Safe migration for older DBs that created `products` before soft delete existed.
    Adds the column if missing. No-op if already present.
    """
    cols = {row[1] for row in conn.execute("PRAGMA table_info(products);").fetchall()}
    if "is_deleted" not in cols:
        conn.execute("ALTER TABLE products ADD COLUMN is_deleted INTEGER NOT NULL DEFAULT 0;")
        _log.info("Added is_deleted column to products table")


def _seed_sequences(conn: sqlite3.Connection) -> None:
    conn.executemany(
        "INSERT OR IGNORE INTO document_sequences(doc_type, last_number) VALUES (?, 0)",
        [(doc_type,) for doc_type in DOC_PREFIXES],
    )


def ensure_schema(conn: sqlite3.Connection) -> None:
    """
    Create every table that is missing and backfill columns added since.
    Never drops or rewrites existing data; safe on every startup.
    """
    conn.executescript(SQL)
    _ensure_products_is_deleted(conn)
    _seed_sequences(conn)
    if conn.in_transaction:
        conn.commit()


def init_schema(db_path: Path | str) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        ensure_schema(conn)
    finally:
        conn.close()
    _log.info("Schema applied to %s", db_path)


if __name__ == "__main__":
    from ..config import db_path as default_db_path

    logging.basicConfig(level=logging.INFO)
    init_schema(sys.argv[1] if len(sys.argv) > 1 else default_db_path())
