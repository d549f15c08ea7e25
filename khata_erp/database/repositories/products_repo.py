# khata_erp/database/repositories/products_repo.py
from __future__ import annotations

from dataclasses import dataclass, asdict
import logging
import sqlite3
from typing import Dict

from ...constants import ALLOWED_PACKING_TYPES, DEFAULT_PACKING_TYPE, PACKING_ALIASES
from ...utils.product_codes import normalize_product_code, size_sort_key
from ...utils.validators import non_empty, parse_float
from ..errors import ConstraintError, ValidationError
from ..tx import immediate_tx

_log = logging.getLogger(__name__)

# every table whose rows reference products.code
_LINE_TABLES = ("invoice_items", "customer_order_items", "supplier_order_items", "quick_sale_items")

_LIVE = "(is_deleted = 0 OR is_deleted IS NULL)"


@dataclass
class Product:
    code: str
    name: str
    size: str | None = None
    packing_type: str | None = None
    cost_price: float | None = None
    selling_price: float | None = None
    is_deleted: int = 0

    def as_dict(self) -> Dict:
        return asdict(self)


@dataclass
class EnsureResult:
    """Outcome of ensure_product(): whether a stub row was inserted."""
    created: bool
    product: Product


class ProductsRepo:
    _COLUMNS = "code, name, size, packing_type, cost_price, selling_price, is_deleted"

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _row_to_product(r: sqlite3.Row) -> Product:
        return Product(
            code=r["code"],
            name=r["name"],
            size=r["size"],
            packing_type=r["packing_type"],
            cost_price=r["cost_price"],
            selling_price=r["selling_price"],
            is_deleted=int(r["is_deleted"] or 0),
        )

    @staticmethod
    def _clean(code: str | None, name: str | None) -> tuple[str, str]:
        if not non_empty(code) or not non_empty(name):
            raise ValidationError("Product code and name are required.")
        return code.strip(), name.strip()

    @classmethod
    def _packing(cls, packing_type: str | None) -> str:
        if not non_empty(packing_type):
            return DEFAULT_PACKING_TYPE
        packing_type = packing_type.strip()
        if not cls.is_valid_packing_type(packing_type):
            raise ValidationError(
                f"Packing type must be one of: {', '.join(ALLOWED_PACKING_TYPES)}."
            )
        return packing_type

    @staticmethod
    def _price(value, label: str) -> float:
        try:
            price = parse_float(value, default=0.0)
        except ValueError as e:
            raise ValidationError(f"{label}: {e}") from e
        if price < 0:
            raise ValidationError(f"{label} cannot be negative.")
        return price

    # ---- Queries ----------------------------------------------------------

    def list_products(self) -> list[Product]:
        """Live products, sorted by name then by the number in the size label."""
        rows = self.conn.execute(
            f"SELECT {self._COLUMNS} FROM products WHERE {_LIVE}"
        ).fetchall()
        products = [self._row_to_product(r) for r in rows]
        products.sort(key=lambda p: ((p.name or "").lower(), size_sort_key(p.size)))
        return products

    def get(self, code: str, *, include_deleted: bool = False) -> Product | None:
        sql = f"SELECT {self._COLUMNS} FROM products WHERE code=?"
        if not include_deleted:
            sql += f" AND {_LIVE}"
        r = self.conn.execute(sql, (code,)).fetchone()
        return self._row_to_product(r) if r else None

    def find_by_normalized_code(self, code: str, *, exclude: str | None = None) -> Product | None:
        """
        Live product whose code normalizes to the same slug as `code`, so
        "Sami 1 No." and "sami-1-no" are caught as one product. The product
        whose code normalizes like `exclude` is skipped.
        """
        wanted = normalize_product_code(code)
        if not wanted:
            return None
        skip = normalize_product_code(exclude) if exclude else None
        for p in self.list_products():
            normalized = normalize_product_code(p.code)
            if normalized == wanted and normalized != skip:
                return p
        return None

    def is_referenced(self, code: str) -> bool:
        for table in _LINE_TABLES:
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE product_code=? LIMIT 1", (code,)).fetchone():
                return True
        return False

    # ---- Mutations --------------------------------------------------------

    def ensure_product(self, code: str) -> EnsureResult:
        """
        Make sure `code` resolves to a product row, inserting a minimal stub
        `{code, name=code}` when it does not. A soft-deleted row counts as
        existing: it stays resolvable for the lines that reference it.
        """
        if not non_empty(code):
            raise ValidationError("Product code is required.")
        code = code.strip()
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT OR IGNORE INTO products(code, name, is_deleted) VALUES (?, ?, 0)",
                (code, code),
            )
            created = cur.rowcount > 0
            product = self.get(code, include_deleted=True)
        if created:
            _log.debug("Created product stub %r", code)
        return EnsureResult(created=created, product=product)

    def create(
        self,
        code: str,
        name: str,
        size: str | None = None,
        packing_type: str | None = None,
        cost_price=None,
        selling_price=None,
    ) -> None:
        code, name = self._clean(code, name)
        cost = self._price(cost_price, "Cost price")
        sell = self._price(selling_price, "Selling price")
        packing_type = self._packing(packing_type)
        existing = self.get(code, include_deleted=True)
        twin = self.find_by_normalized_code(code)
        if twin is not None and twin.code != code:
            raise ConstraintError(f"Product code {code!r} matches existing product {twin.code!r}.")
        with immediate_tx(self.conn):
            if existing is not None and existing.is_deleted:
                # re-adding an archived code revives it
                self.conn.execute(
                    "UPDATE products SET name=?, size=?, packing_type=?, cost_price=?, selling_price=?, is_deleted=0 "
                    "WHERE code=?",
                    (name, size, packing_type, cost, sell, code),
                )
            else:
                self.conn.execute(
                    "INSERT INTO products(code, name, size, packing_type, cost_price, selling_price, is_deleted) "
                    "VALUES (?, ?, ?, ?, ?, ?, 0)",
                    (code, name, size, packing_type, cost, sell),
                )

    def update(
        self,
        code: str,
        name: str,
        size: str | None = None,
        packing_type: str | None = None,
        cost_price=None,
        selling_price=None,
    ) -> bool:
        """Returns False when no live product has this code."""
        code, name = self._clean(code, name)
        cost = self._price(cost_price, "Cost price")
        sell = self._price(selling_price, "Selling price")
        packing_type = self._packing(packing_type)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE products SET name=?, size=?, packing_type=?, cost_price=?, selling_price=? "
                f"WHERE code=? AND {_LIVE}",
                (name, size, packing_type, cost, sell, code),
            )
        return cur.rowcount > 0

    def update_with_code_change(
        self,
        original_code: str,
        new_code: str,
        name: str,
        size: str | None = None,
        packing_type: str | None = None,
        cost_price=None,
        selling_price=None,
    ) -> bool:
        """
        Rename a product's code (legacy codes being normalized) and re-point
        every invoice/order/quick-sale line to it, in one transaction.
        Line prices are snapshots and are left untouched.
        """
        if not non_empty(original_code):
            raise ValidationError("Original code is required.")
        new_code, name = self._clean(new_code, name)
        cost = self._price(cost_price, "Cost price")
        sell = self._price(selling_price, "Selling price")
        packing_type = self._packing(packing_type)

        if original_code != new_code and self.get(new_code, include_deleted=True) is not None:
            raise ConstraintError("A product with this code already exists.")
        twin = self.find_by_normalized_code(new_code, exclude=original_code)
        if twin is not None:
            raise ConstraintError(f"Product code {new_code!r} matches existing product {twin.code!r}.")

        with immediate_tx(self.conn):
            # lines and product move together; check FKs at commit
            self.conn.execute("PRAGMA defer_foreign_keys = ON")
            cur = self.conn.execute(
                f"UPDATE products SET code=?, name=?, size=?, packing_type=?, cost_price=?, selling_price=? "
                f"WHERE code=? AND {_LIVE}",
                (new_code, name, size, packing_type, cost, sell, original_code),
            )
            if cur.rowcount == 0:
                return False
            if original_code != new_code:
                for table in _LINE_TABLES:
                    self.conn.execute(
                        f"UPDATE {table} SET product_code=? WHERE product_code=?",
                        (new_code, original_code),
                    )
        return True

    def soft_delete(self, code: str) -> bool:
        with immediate_tx(self.conn):
            cur = self.conn.execute("UPDATE products SET is_deleted=1 WHERE code=?", (code,))
        return cur.rowcount > 0

    def soft_delete_blank_codes(self) -> int:
        """Archive rows whose code is blank (left over from old imports)."""
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE products SET is_deleted=1 WHERE code IS NULL OR TRIM(code) = ''"
            )
        return cur.rowcount

    def soft_delete_by_rowid(self, rowid: int) -> bool:
        """For rows whose code is too malformed to address by value."""
        with immediate_tx(self.conn):
            cur = self.conn.execute("UPDATE products SET is_deleted=1 WHERE rowid=?", (rowid,))
        return cur.rowcount > 0

    def normalize_packing_types(self) -> int:
        """Rewrite spelling variants ("PCS", "kgs", ...) to the canonical packing labels."""
        total = 0
        with immediate_tx(self.conn):
            for canonical, aliases in PACKING_ALIASES.items():
                for alias in aliases:
                    if alias == canonical:
                        continue
                    cur = self.conn.execute(
                        "UPDATE products SET packing_type=? WHERE packing_type=?", (canonical, alias)
                    )
                    total += cur.rowcount
        _log.info("Normalized packing type on %s products", total)
        return total

    def cleanup_soft_deleted(self) -> Dict[str, int]:
        """
        Hard-delete archived products that no line references. Referenced
        ones are skipped and stay resolvable. Each delete is its own
        transaction so one refusal does not undo the others.
        """
        codes = [
            r["code"]
            for r in self.conn.execute("SELECT code FROM products WHERE is_deleted = 1").fetchall()
        ]
        deleted = skipped = 0
        for code in codes:
            if self.is_referenced(code):
                skipped += 1
                _log.info("[Admin] Skipped product (referenced elsewhere): %s", code)
                continue
            try:
                with immediate_tx(self.conn):
                    cur = self.conn.execute("DELETE FROM products WHERE code=? AND is_deleted=1", (code,))
            except ConstraintError as e:
                skipped += 1
                _log.warning("[Admin] Could not delete product %s: %s", code, e)
                continue
            deleted += cur.rowcount
        _log.info("[Admin] Cleanup completed. Deleted: %s, Skipped: %s", deleted, skipped)
        return {"deleted": deleted, "skipped": skipped, "total": len(codes)}

    @staticmethod
    def is_valid_packing_type(packing_type: str | None) -> bool:
        return packing_type in ALLOWED_PACKING_TYPES
