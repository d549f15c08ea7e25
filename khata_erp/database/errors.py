from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# Domain-level error the caller can surface directly (toast/snackbar)
class DomainError(Exception):
    code = "domain"


class ValidationError(DomainError):
    """Missing/blank required field, non-positive quantity, malformed payload."""
    code = "validation"


class NotFoundError(DomainError):
    code = "not_found"


class ConstraintError(DomainError):
    """Uniqueness / referential violation reported by SQLite."""
    code = "constraint"


@dataclass
class ConsistencyAnomaly:
    """
    Inconsistent prior state noticed while writing. Logged, never raised:
    the write that found it still completes.
    """
    kind: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details}
