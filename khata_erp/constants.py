APP_NAME = "Khata ERP"
APP_ORG = "khata"
DB_FILE_NAME = "erp.db"
DATA_DIR_ENV = "KHATA_ERP_DATA_DIR"
LOG_DIR_ENV = "KHATA_ERP_LOG_DIR"
REUSE_NUMBERS_ENV = "KHATA_ERP_REUSE_FREED_NUMBERS"

TABLE_MIGRATIONS = "migration_history"
TABLE_SEQUENCES = "document_sequences"

# ---- document types -> id prefix ----
DOC_INVOICE = "invoice"
DOC_CUSTOMER_ORDER = "customer_order"
DOC_SUPPLIER_ORDER = "supplier_order"
DOC_QUICK_SALE = "quick_sale"

DOC_PREFIXES = {
    DOC_INVOICE: "E",
    DOC_CUSTOMER_ORDER: "O-C",
    DOC_SUPPLIER_ORDER: "O-S",
    DOC_QUICK_SALE: "QS",
}

# invoices issued before the "E-" series
LEGACY_PREFIXES = {
    DOC_INVOICE: ("AGS-I",),
}

# freed numbers go back to these tables (only when reuse is enabled)
REUSE_POOLS = {
    DOC_INVOICE: ("reusable_invoice_numbers", "invoice_number"),
    DOC_QUICK_SALE: ("reusable_quick_sale_numbers", "qs_number"),
}

# ---- ledger ----
DEFAULT_PAYMENT_TYPE = "Cash"
INVOICE_PAYMENT_REMARK = "Invoice {doc_id}"
ORDER_PAYMENT_REMARK = "Order {doc_id}"

# ---- products ----
ALLOWED_PACKING_TYPES = ("Pc", "Kg", "Dz", "Box", "Kodi", "Theli", "Packet", "Set")
DEFAULT_PACKING_TYPE = "Pc"

PACKING_ALIASES = {
    "Pc": ("PC", "PCS", "pc", "pcs"),
    "Kg": ("KG", "KGS", "kg", "kgs"),
    "Dz": ("DZ", "DOZ", "DOZEN", "dz", "doz", "dozen"),
    "Box": ("BOX", "BOXES", "box", "boxes"),
    "Kodi": ("KODI", "kodi"),
    "Theli": ("THELI", "theli"),
    "Packet": ("PACKET", "packet"),
    "Set": ("SET", "set"),
}
