"""Khata ERP: price list, invoices, orders and maal/jama party ledgers on SQLite."""

__version__ = "0.1.0"
