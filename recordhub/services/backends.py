from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol

from sqlalchemy import Connection, Engine, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from recordhub.core.context import CallContext
from recordhub.core.errors import NotFoundError, QueryError
from recordhub.schemas.listing import ListRequest, ListResult
from recordhub.services import operators
from recordhub.services.evaluator import evaluate_list
from recordhub.services.record_schema import RecordSchema
from recordhub.services.sql_query import execute_list, reflect_table, row_to_record, run_statement, translate_db_error

_LOG = logging.getLogger("recordhub.backends")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RecordBackend(Protocol):
    table: str

    def insert(self, ctx: CallContext, record: dict[str, Any]) -> dict[str, Any]:
        ...

    def fetch(self, ctx: CallContext, record_id: str) -> dict[str, Any]:
        ...

    def update(self, ctx: CallContext, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        ...

    def soft_delete(self, ctx: CallContext, record_id: str, modified_at: datetime) -> None:
        ...

    def hard_delete(self, ctx: CallContext, record_id: str) -> None:
        ...

    def list(self, ctx: CallContext, request: ListRequest) -> ListResult:
        ...


class SqlRecordBackend:
    """Relational storage for one table. The table is reflected on every call."""

    def __init__(self, engine: Engine, table: str):
        self.engine = engine
        self.table = table

    @contextmanager
    def _transaction(self, ctx: CallContext, operation: str) -> Iterator[Connection]:
        ctx.raise_if_done(operation)
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            _LOG.warning("%s on %s failed: %s", operation, self.table, exc)
            raise translate_db_error(exc, operation, cancelled=ctx.cancelled) from exc

    def _select_by_id(self, conn: Connection, ctx: CallContext, table, record_id: str, operation: str):
        statement = select(table).where(table.c.id == record_id)
        return run_statement(conn, ctx, statement, operation).mappings().first()

    def insert(self, ctx: CallContext, record: dict[str, Any]) -> dict[str, Any]:
        operation = f"insert {self.table}"
        with self._transaction(ctx, operation) as conn:
            table = reflect_table(conn, self.table)
            values = {key: value for key, value in record.items() if key in table.c}
            dropped = sorted(set(record) - set(values))
            if dropped:
                _LOG.debug("discarding non-column fields for %s: %s", self.table, dropped)
            run_statement(conn, ctx, insert(table).values(**values), operation)
            row = self._select_by_id(conn, ctx, table, values["id"], operation)
        return row_to_record(row)

    def fetch(self, ctx: CallContext, record_id: str) -> dict[str, Any]:
        operation = f"read {self.table}"
        with self._transaction(ctx, operation) as conn:
            table = reflect_table(conn, self.table)
            statement = select(table).where(table.c.id == record_id, table.c.active.is_(True))
            row = run_statement(conn, ctx, statement, operation).mappings().first()
        if row is None:
            raise NotFoundError(self.table, record_id)
        return row_to_record(row)

    def update(self, ctx: CallContext, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        operation = f"update {self.table}"
        with self._transaction(ctx, operation) as conn:
            table = reflect_table(conn, self.table)
            # inactive rows are visible here so they can be restored
            exists = run_statement(conn, ctx, select(table.c.id).where(table.c.id == record_id), operation).first()
            if exists is None:
                raise NotFoundError(self.table, record_id)
            values = {
                key: value
                for key, value in changes.items()
                if key in table.c and key not in ("id", "date_created")
            }
            if values:
                run_statement(conn, ctx, update(table).where(table.c.id == record_id).values(**values), operation)
            row = self._select_by_id(conn, ctx, table, record_id, operation)
        return row_to_record(row)

    def soft_delete(self, ctx: CallContext, record_id: str, modified_at: datetime) -> None:
        operation = f"delete {self.table}"
        with self._transaction(ctx, operation) as conn:
            table = reflect_table(conn, self.table)
            statement = (
                update(table)
                .where(table.c.id == record_id, table.c.active.is_(True))
                .values(active=False, date_modified=modified_at)
            )
            result = run_statement(conn, ctx, statement, operation)
            if result.rowcount == 0:
                raise NotFoundError(self.table, record_id)

    def hard_delete(self, ctx: CallContext, record_id: str) -> None:
        operation = f"hard delete {self.table}"
        with self._transaction(ctx, operation) as conn:
            table = reflect_table(conn, self.table)
            result = run_statement(conn, ctx, delete(table).where(table.c.id == record_id), operation)
            if result.rowcount == 0:
                raise NotFoundError(self.table, record_id)

    def list(self, ctx: CallContext, request: ListRequest) -> ListResult:
        with self._transaction(ctx, f"list {self.table}") as conn:
            table = reflect_table(conn, self.table)
            return execute_list(conn, table, request, ctx)


def _base_order_key(record: Mapping[str, Any]) -> tuple:
    return (operators.to_utc(record.get("date_created")) or _EPOCH, str(record.get("id") or ""))


class MemoryRecordBackend:
    """Dictionary storage for one collection, evaluated with the in-memory evaluator."""

    def __init__(self, schema: RecordSchema, records: Iterable[Mapping[str, Any]] = ()):
        self.schema = schema
        self.table = schema.table
        self._rows: dict[str, dict[str, Any]] = {}
        self._lock = Lock()
        for record in records:
            shaped = self._shape(record)
            self._rows[str(shaped["id"])] = shaped

    def _shape(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return {name: record.get(name) for name in self.schema.fields}

    def insert(self, ctx: CallContext, record: dict[str, Any]) -> dict[str, Any]:
        ctx.raise_if_done(f"insert {self.table}")
        shaped = self._shape(record)
        record_id = str(shaped["id"])
        with self._lock:
            if record_id in self._rows:
                raise QueryError(f'duplicate id "{record_id}" in "{self.table}"', operation=f"insert {self.table}")
            self._rows[record_id] = shaped
            return dict(shaped)

    def fetch(self, ctx: CallContext, record_id: str) -> dict[str, Any]:
        ctx.raise_if_done(f"read {self.table}")
        with self._lock:
            row = self._rows.get(record_id)
            if row is None or row.get("active") is not True:
                raise NotFoundError(self.table, record_id)
            return dict(row)

    def update(self, ctx: CallContext, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        ctx.raise_if_done(f"update {self.table}")
        with self._lock:
            row = self._rows.get(record_id)
            if row is None:
                raise NotFoundError(self.table, record_id)
            for key, value in changes.items():
                if key in self.schema.fields and key not in ("id", "date_created"):
                    row[key] = value
            return dict(row)

    def soft_delete(self, ctx: CallContext, record_id: str, modified_at: datetime) -> None:
        ctx.raise_if_done(f"delete {self.table}")
        with self._lock:
            row = self._rows.get(record_id)
            if row is None or row.get("active") is not True:
                raise NotFoundError(self.table, record_id)
            row["active"] = False
            row["date_modified"] = modified_at

    def hard_delete(self, ctx: CallContext, record_id: str) -> None:
        ctx.raise_if_done(f"hard delete {self.table}")
        with self._lock:
            if self._rows.pop(record_id, None) is None:
                raise NotFoundError(self.table, record_id)

    def list(self, ctx: CallContext, request: ListRequest) -> ListResult:
        ctx.raise_if_done(f"list {self.table}")
        with self._lock:
            rows = [dict(row) for row in self._rows.values() if row.get("active") is True]
        rows.sort(key=_base_order_key, reverse=True)
        return evaluate_list(rows, request, self.schema)


BackendFactory = Callable[[RecordSchema], RecordBackend]


def sql_backend_factory(engine: Engine | None) -> BackendFactory:
    if engine is None:
        raise ValueError("the sql backend needs an engine")
    return lambda schema: SqlRecordBackend(engine, schema.table)


def memory_backend_factory(engine: Engine | None = None) -> BackendFactory:
    return lambda schema: MemoryRecordBackend(schema)


BACKEND_FACTORIES: dict[str, Callable[[Engine | None], BackendFactory]] = {
    "sql": sql_backend_factory,
    "memory": memory_backend_factory,
}
