# khata_erp/database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from khata_erp.database.repositories import (
        # Catalogue and parties
        ProductsRepo, Product, CustomersRepo, SuppliersRepo, Party,
        # Numbering
        SequenceAllocator,
        # Ledgers
        CustomerLedgerRepo, SupplierLedgerRepo, Payment,
        # Aggregates
        InvoicesRepo, CustomerOrdersRepo, SupplierOrdersRepo, QuickSalesRepo,
        # Read side
        HistoryRepo,
    )
"""

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product, EnsureResult

# ---------------- Parties ------------------
from .parties_repo import CustomersRepo, SuppliersRepo, Party

# ---------------- Numbering ----------------
from .sequences_repo import SequenceAllocator

# ---------------- Ledgers ------------------
from .ledger_repo import CustomerLedgerRepo, SupplierLedgerRepo, Payment

# ---------------- Invoices -----------------
from .invoices_repo import InvoicesRepo, InvoiceDraft, InvoiceHeader, InvoiceLine, Surcharges

# ----------------- Orders ------------------
from .orders_repo import (
    CustomerOrdersRepo,
    SupplierOrdersRepo,
    CustomerOrderStatus,
    SupplierOrderStatus,
    OrderLine,
)

# -------------- Quick sales ----------------
from .quick_sales_repo import QuickSalesRepo

# ---------------- History ------------------
from .history_repo import HistoryRepo

__all__ = [
    # products_repo
    "ProductsRepo",
    "Product",
    "EnsureResult",
    # parties_repo
    "CustomersRepo",
    "SuppliersRepo",
    "Party",
    # sequences_repo
    "SequenceAllocator",
    # ledger_repo
    "CustomerLedgerRepo",
    "SupplierLedgerRepo",
    "Payment",
    # invoices_repo
    "InvoicesRepo",
    "InvoiceDraft",
    "InvoiceHeader",
    "InvoiceLine",
    "Surcharges",
    # orders_repo
    "CustomerOrdersRepo",
    "SupplierOrdersRepo",
    "CustomerOrderStatus",
    "SupplierOrderStatus",
    "OrderLine",
    # quick_sales_repo
    "QuickSalesRepo",
    # history_repo
    "HistoryRepo",
]
