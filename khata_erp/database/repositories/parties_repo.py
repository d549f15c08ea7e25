from __future__ import annotations
from dataclasses import dataclass, asdict
import sqlite3

from ..errors import ValidationError
from ..tx import immediate_tx


@dataclass
class Party:
    party_id: str
    name: str
    address: str | None
    mobile: str | None

    def as_dict(self, id_field: str = "party_id") -> dict:
        d = asdict(self)
        d[id_field] = d.pop("party_id")
        return d


class PartiesRepo:
    """
    Customers and suppliers share one shape and live in two tables.
    Subclasses only name the table and its id column.
    """

    TABLE = ""
    ID_COL = ""
    LABEL = "Party"

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return str(s).strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if value is None or str(value).strip() == "":
            raise ValidationError(f"{field_label} cannot be empty.")

    def _select(self) -> str:
        return f"SELECT {self.ID_COL} AS party_id, name, address, mobile FROM {self.TABLE}"

    # ---- Queries ----------------------------------------------------------

    def list_all(self) -> list[Party]:
        rows = self.conn.execute(self._select() + " ORDER BY name COLLATE NOCASE").fetchall()
        return [Party(**r) for r in rows]

    def search(self, term: str) -> list[Party]:
        """LIKE match over id, name, mobile and address."""
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            self._select()
            + f" WHERE {self.ID_COL} LIKE ? OR name LIKE ? OR mobile LIKE ? OR address LIKE ?"
            " ORDER BY name COLLATE NOCASE",
            (pattern, pattern, pattern, pattern),
        ).fetchall()
        return [Party(**r) for r in rows]

    def get(self, party_id: str) -> Party | None:
        r = self.conn.execute(self._select() + f" WHERE {self.ID_COL}=?", (party_id,)).fetchone()
        return Party(**r) if r else None

    def exists(self, party_id: str) -> bool:
        return self.conn.execute(
            f"SELECT 1 FROM {self.TABLE} WHERE {self.ID_COL}=?", (party_id,)
        ).fetchone() is not None

    # ---- Mutations --------------------------------------------------------

    def create(self, party_id: str, name: str, address: str | None = None, mobile: str | None = None) -> str:
        self._ensure_non_empty(party_id, f"{self.LABEL} ID")
        self._ensure_non_empty(name, "Name")
        pid = self._normalize_text(party_id)
        with immediate_tx(self.conn):
            self.conn.execute(
                f"INSERT INTO {self.TABLE}({self.ID_COL}, name, address, mobile) VALUES (?,?,?,?)",
                (pid, self._normalize_text(name), self._normalize_text(address), self._normalize_text(mobile)),
            )
        return pid

    def update(self, party_id: str, name: str, address: str | None = None, mobile: str | None = None) -> bool:
        self._ensure_non_empty(party_id, f"{self.LABEL} ID")
        self._ensure_non_empty(name, "Name")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE {self.TABLE} SET name=?, address=?, mobile=? WHERE {self.ID_COL}=?",
                (self._normalize_text(name), self._normalize_text(address), self._normalize_text(mobile), party_id),
            )
        return cur.rowcount > 0

    def delete(self, party_id: str) -> bool:
        """
        Parties with invoices, orders or ledger rows are protected by their
        foreign keys; deleting one raises ConstraintError.
        """
        with immediate_tx(self.conn):
            cur = self.conn.execute(f"DELETE FROM {self.TABLE} WHERE {self.ID_COL}=?", (party_id,))
        return cur.rowcount > 0


class CustomersRepo(PartiesRepo):
    TABLE = "customers"
    ID_COL = "customer_id"
    LABEL = "Customer"


class SuppliersRepo(PartiesRepo):
    TABLE = "suppliers"
    ID_COL = "supplier_id"
    LABEL = "Supplier"
