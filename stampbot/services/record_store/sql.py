from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote

from sqlalchemy import Date, DateTime, Table, delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stampbot.database import Base
from stampbot.logging_config import get_logger
from stampbot.services.record_store.base import RecordStore, RecordStoreError, iter_conditions, to_json_row

logger = get_logger("record_store.sql")

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _coerce(column, value):
    """Accept the ISO strings a REST client would send for date columns."""
    if not isinstance(value, str):
        return value
    if isinstance(column.type, DateTime):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(column.type, Date):
        return date.fromisoformat(value[:10])
    return value


class SqlRecordStore(RecordStore):
    """Direct-database backend built on SQLAlchemy Core and a Session."""

    def __init__(self, session: Session, media_dir: str = "./media", public_base_url: str = "http://localhost:8000"):
        import stampbot.models  # noqa: F401  (registers tables on Base.metadata)

        self.session = session
        self.media_dir = Path(media_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def _table(self, name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise RecordStoreError(f"Unknown table: {name}") from None

    def _row(self, table: Table, row: dict) -> dict:
        return {key: _coerce(table.c[key], value) for key, value in row.items()}

    def _where(self, table: Table, filters: Optional[dict]) -> list:
        clauses = []
        for column_name, op, raw in iter_conditions(filters):
            column = table.c[column_name]
            value = _coerce(column, raw)
            if op == "eq":
                clauses.append(column.is_(None) if value is None else column == value)
            elif op == "neq":
                clauses.append(column.is_not(None) if value is None else column != value)
            elif op == "gt":
                clauses.append(column > value)
            elif op == "gte":
                clauses.append(column >= value)
            elif op == "lt":
                clauses.append(column < value)
            elif op == "lte":
                clauses.append(column <= value)
            elif op == "is":
                clauses.append(column.is_(value))
        return clauses

    def _dialect_insert(self, table: Table):
        dialect = self.session.get_bind().dialect.name
        factory = _DIALECT_INSERTS.get(dialect)
        if factory is None:
            raise RecordStoreError(f"Conditional insert not supported on {dialect}")
        return factory(table)

    def _execute(self, stmt, *, write: bool) -> tuple[list[dict], int]:
        """Run a statement; rows and rowcount are read before the commit closes the cursor."""
        try:
            result = self.session.execute(stmt)
            rows = [dict(row) for row in result.mappings().all()] if result.returns_rows else []
            rowcount = result.rowcount if write else len(rows)
            if write:
                self.session.commit()
            return rows, rowcount
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"SQL record store error: {e}")
            raise RecordStoreError(str(e)) from e

    def get_one(self, table: str, filters: dict, columns: str = "*") -> Optional[dict]:
        rows = self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def select(self, table, filters=None, columns="*", order_by=None, limit=None) -> list[dict]:
        t = self._table(table)
        if columns.strip() == "*":
            stmt = select(t)
        else:
            stmt = select(*[t.c[name.strip()] for name in columns.split(",") if name.strip()])
        for clause in self._where(t, filters):
            stmt = stmt.where(clause)
        if order_by:
            name, _, direction = order_by.partition(".")
            column = t.c[name]
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        rows, _ = self._execute(stmt, write=False)
        return [to_json_row(row) for row in rows]

    def insert(self, table: str, row: dict) -> dict:
        t = self._table(table)
        rows, _ = self._execute(insert(t).values(**self._row(t, row)).returning(*t.c), write=True)
        return to_json_row(rows[0] if rows else row)

    def insert_if_absent(self, table: str, row: dict, conflict: Sequence[str]) -> bool:
        t = self._table(table)
        stmt = self._dialect_insert(t).values(**self._row(t, row)).on_conflict_do_nothing(index_elements=list(conflict))
        _, rowcount = self._execute(stmt, write=True)
        return rowcount > 0

    def upsert(self, table: str, row: dict, conflict: Sequence[str]) -> Optional[dict]:
        t = self._table(table)
        stmt = self._dialect_insert(t).values(**self._row(t, row))
        updates = {key: stmt.excluded[key] for key in row if key not in conflict}
        if updates:
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict), set_=updates)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict))
        rows, _ = self._execute(stmt.returning(*t.c), write=True)
        return to_json_row(rows[0]) if rows else None

    def update(self, table: str, filters: dict, patch: dict) -> int:
        t = self._table(table)
        stmt = update(t).values(**self._row(t, patch))
        for clause in self._where(t, filters):
            stmt = stmt.where(clause)
        return self._execute(stmt, write=True)[1]

    def delete(self, table: str, filters: dict) -> int:
        t = self._table(table)
        stmt = delete(t)
        for clause in self._where(t, filters):
            stmt = stmt.where(clause)
        return self._execute(stmt, write=True)[1]

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        relative = f"{bucket}/{path.lstrip('/')}"
        target = (self.media_dir / relative).resolve()
        if self.media_dir.resolve() not in target.parents:
            raise RecordStoreError(f"Refusing to write outside media dir: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Local upload failed: {e}")
            raise RecordStoreError(f"Local upload failed: {e}") from e
        return f"{self.public_base_url}/media/{quote(relative, safe='/')}"

    def close(self) -> None:
        self.session.close()
