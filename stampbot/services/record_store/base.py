from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, NamedTuple, Optional, Sequence

OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "is")


class RecordStoreError(RuntimeError):
    """Record store is unreachable or rejected a request."""


class Cond(NamedTuple):
    """Non-equality predicate on a single column, e.g. Cond("gte", "2025-01-01")."""

    op: str
    value: Any


def gte(value: Any) -> Cond:
    return Cond("gte", value)


def lt(value: Any) -> Cond:
    return Cond("lt", value)


def iter_conditions(filters: Optional[dict]) -> list[tuple[str, str, Any]]:
    """Flatten a filter dict into (column, op, value) triples."""
    triples = []
    for column, raw in (filters or {}).items():
        conds = raw if isinstance(raw, list) else [raw]
        for cond in conds:
            if isinstance(cond, Cond):
                if cond.op not in OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {cond.op}")
                triples.append((column, cond.op, cond.value))
            else:
                triples.append((column, "eq", cond))
    return triples


def to_json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def to_json_row(row: dict) -> dict:
    return {key: to_json_value(value) for key, value in row.items()}


class RecordStore(ABC):
    """CRUD over named collections.

    Rows cross this boundary as JSON-compatible dicts (dates as ISO strings),
    the way a REST backend returns them.
    """

    @abstractmethod
    def get_one(self, table: str, filters: dict, columns: str = "*") -> Optional[dict]:
        """Return the first matching row or None."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return matching rows. order_by is "column" or "column.desc"."""

    @abstractmethod
    def insert(self, table: str, row: dict) -> dict:
        """Insert one row and return it as stored (generated ids included)."""

    @abstractmethod
    def insert_if_absent(self, table: str, row: dict, conflict: Sequence[str]) -> bool:
        """Single conditional insert. True iff this call created the row."""

    @abstractmethod
    def upsert(self, table: str, row: dict, conflict: Sequence[str]) -> Optional[dict]:
        """Insert or merge into the row identified by the conflict columns."""

    @abstractmethod
    def update(self, table: str, filters: dict, patch: dict) -> int:
        """Patch matching rows and return how many were changed."""

    @abstractmethod
    def delete(self, table: str, filters: dict) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Store a binary object and return its public URL."""

    def close(self) -> None:
        pass
