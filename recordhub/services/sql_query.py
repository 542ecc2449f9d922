from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Mapping

from sqlalchemy import (
    ColumnElement,
    Connection,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    case,
    false,
    func,
    or_,
    select,
    text,
    true,
)
from sqlalchemy.exc import DBAPIError, NoSuchTableError, SQLAlchemyError

from recordhub.core.context import CallContext
from recordhub.core.errors import QUERY_CANCELLED, QUERY_DEADLINE, QueryError, SchemaError, ValidationError
from recordhub.schemas.listing import (
    BooleanFilter,
    DateFilter,
    FilterLogic,
    FilterRequest,
    ListFilter,
    ListOperator,
    ListRequest,
    ListResult,
    NullOrder,
    NumberFilter,
    NumberOperator,
    RangeFilter,
    SearchRequest,
    SearchResult,
    SortDirection,
    SortRequest,
    StringFilter,
    StringOperator,
    TypedFilter,
)
from recordhub.services import operators
from recordhub.services.pagination import cap_total, page_size, paginate, resolve_window
from recordhub.services.record_schema import REQUIRED_FIELDS, FieldType, RecordSchema
from recordhub.services.search import FUZZY_DENOMINATOR, FUZZY_NUMERATOR, score_record, search_metrics, tokenize
from recordhub.services.validation import resolve_search_fields, validate_list_request

_LOG = logging.getLogger("recordhub.sql")

BASE_ORDER = ("date_created", "id")
_PG_QUERY_CANCELED = "57014"


def reflect_table(conn: Connection, table_name: str) -> Table:
    """Load the live column set of ``table_name``; every statement is built against it."""
    try:
        table = Table(table_name, MetaData(), autoload_with=conn)
    except NoSuchTableError as exc:
        _LOG.warning("table %s does not exist", table_name)
        raise SchemaError(f'table "{table_name}" does not exist', details={"table": table_name}) from exc
    except SQLAlchemyError as exc:
        _LOG.warning("introspection of %s failed: %s", table_name, exc)
        raise SchemaError(f'cannot introspect table "{table_name}"', details={"table": table_name}) from exc
    missing = [name for name in REQUIRED_FIELDS if name not in table.c]
    if missing:
        raise SchemaError(
            f'table "{table_name}" lacks required columns: {", ".join(missing)}',
            details={"table": table_name, "missing": missing},
        )
    return table


def normalize_value(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_record(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: normalize_value(value) for key, value in row.items()}


def _is_statement_timeout(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == _PG_QUERY_CANCELED


def translate_db_error(exc: SQLAlchemyError, operation: str, *, cancelled: bool = False) -> QueryError:
    if cancelled:
        return QueryError(f"{operation} cancelled by caller", reason=QUERY_CANCELLED, operation=operation)
    if isinstance(exc, DBAPIError) and _is_statement_timeout(exc):
        return QueryError(f"{operation} exceeded its deadline", reason=QUERY_DEADLINE, operation=operation)
    retryable = bool(getattr(exc, "connection_invalidated", False))
    return QueryError(f"{operation} failed: {exc.__class__.__name__}", operation=operation, retryable=retryable)


def apply_statement_timeout(conn: Connection, ctx: CallContext) -> None:
    remaining = ctx.remaining()
    if remaining is None or conn.dialect.name != "postgresql":
        return
    millis = max(1, int(remaining * 1000))
    conn.execute(text("SELECT set_config('statement_timeout', :ms, true)"), {"ms": str(millis)})


def _driver_interrupt(conn: Connection) -> Callable[[], None] | None:
    """Thread-safe abort of the statement running on ``conn``.

    psycopg sends a cancel request to the server (the statement then fails with
    57014); sqlite3 interrupts the running step.
    """
    dbapi_conn = conn.connection.dbapi_connection
    for name in ("cancel", "interrupt"):
        method = getattr(dbapi_conn, name, None)
        if callable(method):
            return method
    return None


def _interrupt_on_cancel(conn: Connection, ctx: CallContext, operation: str) -> Callable[[], None]:
    interrupt = _driver_interrupt(conn)
    if interrupt is None:
        return lambda: None

    def _abort() -> None:
        _LOG.info("%s: cancelling running statement", operation)
        try:
            interrupt()
        except Exception as exc:
            _LOG.warning("%s: driver cancel failed: %s", operation, exc)

    return ctx.on_cancel(_abort)


def run_statement(conn: Connection, ctx: CallContext, statement: Any, operation: str):
    """Execute one statement under the call context, mapping driver failures to QueryError.

    A cancel that arrives while the statement runs aborts it through the driver.
    """
    ctx.raise_if_done(operation)
    try:
        apply_statement_timeout(conn, ctx)
        _LOG.debug("%s: %s", operation, statement)
        unregister = _interrupt_on_cancel(conn, ctx, operation)
        try:
            return conn.execute(statement)
        finally:
            unregister()
    except SQLAlchemyError as exc:
        _LOG.warning("%s failed: %s", operation, exc)
        raise translate_db_error(exc, operation, cancelled=ctx.cancelled) from exc


class SqlListCompiler:
    """Compiles a ListRequest against one reflected table.

    Every field name reaches SQL through ``_column``; values are always bound.
    """

    def __init__(self, table: Table, dialect_name: str = "postgresql"):
        self.table = table
        self.dialect_name = dialect_name
        self.schema = RecordSchema.from_table(table)

    def _column(self, name: str) -> ColumnElement:
        if not isinstance(name, str) or name not in self.table.c:
            raise ValidationError(
                f'unknown field "{name}" for table "{self.table.name}"',
                details={"field": name, "table": self.table.name},
            )
        return self.table.c[name]

    def _case_sensitive_substring(self, col: ColumnElement, value: str, operator: StringOperator) -> ColumnElement:
        if self.dialect_name != "sqlite":
            if operator is StringOperator.CONTAINS:
                return col.contains(value, autoescape=True)
            if operator is StringOperator.STARTS_WITH:
                return col.startswith(value, autoescape=True)
            return col.endswith(value, autoescape=True)
        # sqlite LIKE ignores ASCII case
        if operator is StringOperator.CONTAINS:
            return func.instr(col, value, type_=Integer()) > 0
        if operator is StringOperator.STARTS_WITH:
            return func.instr(col, value, type_=Integer()) == 1
        return and_(
            func.length(col, type_=Integer()) >= len(value),
            func.substr(col, func.length(col, type_=Integer()) - len(value) + 1, type_=String()) == value,
        )

    def _string_condition(self, col: ColumnElement, flt: StringFilter) -> ColumnElement:
        if flt.operator is StringOperator.REGEX:
            return col.regexp_match(operators.regex_source(flt))
        target, value = col, flt.value
        if not flt.case_sensitive:
            target, value = func.lower(col, type_=String()), value.lower()
        match flt.operator:
            case StringOperator.EQUALS:
                return target == value
            case StringOperator.NOT_EQUALS:
                return target != value
            case StringOperator.CONTAINS | StringOperator.STARTS_WITH | StringOperator.ENDS_WITH:
                if flt.case_sensitive:
                    return self._case_sensitive_substring(col, value, flt.operator)
                if flt.operator is StringOperator.CONTAINS:
                    return target.contains(value, autoescape=True)
                if flt.operator is StringOperator.STARTS_WITH:
                    return target.startswith(value, autoescape=True)
                return target.endswith(value, autoescape=True)
        raise ValidationError(f'unsupported string operator "{flt.operator}"')

    def _number_condition(self, col: ColumnElement, flt: NumberFilter) -> ColumnElement:
        match flt.operator:
            case NumberOperator.EQUALS:
                return col == flt.value
            case NumberOperator.NOT_EQUALS:
                return col != flt.value
            case NumberOperator.GT:
                return col > flt.value
            case NumberOperator.GTE:
                return col >= flt.value
            case NumberOperator.LT:
                return col < flt.value
            case NumberOperator.LTE:
                return col <= flt.value
        raise ValidationError(f'unsupported number operator "{flt.operator}"')

    def _list_condition(self, col: ColumnElement, flt: ListFilter, field_type: FieldType | None) -> ColumnElement:
        values = operators.coerce_list_values(flt.values, field_type)
        if flt.operator is ListOperator.IN:
            return col.in_(values) if values else false()
        if flt.operator is ListOperator.NOT_IN:
            return col.not_in(values) if values else col.is_not(None)
        raise ValidationError(f'unsupported list operator "{flt.operator}"')

    @staticmethod
    def _range_condition(col: ColumnElement, flt: RangeFilter) -> ColumnElement:
        lower = col >= flt.min if flt.include_min else col > flt.min
        upper = col <= flt.max if flt.include_max else col < flt.max
        return and_(lower, upper)

    @staticmethod
    def _date_condition(col: ColumnElement, bounds: operators.DateBounds) -> ColumnElement:
        parts = []
        if bounds.start is not None:
            parts.append(col >= bounds.start if bounds.include_start else col > bounds.start)
        if bounds.end is not None:
            parts.append(col <= bounds.end if bounds.include_end else col < bounds.end)
        return and_(*parts) if parts else true()

    def condition(self, typed: TypedFilter) -> ColumnElement | None:
        """SQL predicate for one filter; ``None`` for filters that select everything."""
        col = self._column(typed.field)
        flt = typed.condition
        if operators.is_noop(flt):
            return None
        match flt:
            case StringFilter():
                return self._string_condition(col, flt)
            case NumberFilter():
                return self._number_condition(col, flt)
            case BooleanFilter():
                return col == flt.value
            case ListFilter():
                return self._list_condition(col, flt, self.schema.type_of(typed.field))
            case RangeFilter():
                return self._range_condition(col, flt)
            case DateFilter():
                bounds = operators.date_bounds(typed.field, flt)
                return None if bounds is None else self._date_condition(col, bounds)
        raise ValidationError(f'unsupported filter kind for field "{typed.field}"')

    def filter_clause(self, request: FilterRequest | None) -> ColumnElement | None:
        if request is None:
            return None
        parts = [c for c in (self.condition(typed) for typed in request.filters) if c is not None]
        if not parts:
            return None
        if request.logic is FilterLogic.OR:
            return or_(*parts)
        return and_(*parts)

    def _term_condition(self, lowered: ColumnElement, term: str, fuzzy: bool) -> ColumnElement:
        exact = lowered.contains(term, autoescape=True)
        if not fuzzy:
            return exact
        found = [case((lowered.contains(ch, autoescape=True), 1), else_=0) for ch in term]
        total = found[0]
        for part in found[1:]:
            total = total + part
        return or_(exact, total * FUZZY_NUMERATOR > FUZZY_DENOMINATOR * len(term))

    def search_field_matches(self, request: SearchRequest | None) -> dict[str, ColumnElement]:
        """One "this field matches the query" condition per searched field."""
        terms = tokenize(request.query) if request is not None else []
        if not terms:
            return {}
        matches: dict[str, ColumnElement] = {}
        for name in resolve_search_fields(self.schema, request):
            lowered = func.lower(self._column(name), type_=String())
            matches[name] = or_(*(self._term_condition(lowered, term, request.enable_fuzzy) for term in terms))
        return matches

    def search_clause(self, request: SearchRequest | None) -> ColumnElement | None:
        if request is None or not tokenize(request.query):
            return None
        matches = self.search_field_matches(request)
        return or_(*matches.values()) if matches else false()

    def where_clause(self, request: ListRequest) -> ColumnElement:
        clauses = [self._column("active").is_(True)]
        for clause in (self.filter_clause(request.filters), self.search_clause(request.search)):
            if clause is not None:
                clauses.append(clause)
        return and_(*clauses)

    def order_by(self, request: SortRequest | None) -> list[ColumnElement]:
        order: list[ColumnElement] = []
        seen: set[str] = set()
        for item in request.fields if request is not None else []:
            col = self._column(item.field)
            descending = item.direction is SortDirection.DESC
            expr = col.desc() if descending else col.asc()
            nulls_first = item.null_order is NullOrder.NULLS_FIRST or (
                item.null_order is NullOrder.DEFAULT and descending
            )
            order.append(expr.nulls_first() if nulls_first else expr.nulls_last())
            seen.add(item.field)
        for name in BASE_ORDER:
            if name not in seen:
                order.append(self._column(name).desc())
        return order

    def count_statement(self, where: ColumnElement, field_matches: Mapping[str, ColumnElement] | None = None):
        columns = [func.count()]
        for condition in (field_matches or {}).values():
            columns.append(func.coalesce(func.sum(case((condition, 1), else_=0)), 0))
        return select(*columns).select_from(self.table).where(where)

    def data_statement(self, where: ColumnElement, order: list[ColumnElement], limit: int, offset: int):
        return select(self.table).where(where).order_by(*order).limit(limit).offset(offset)


def execute_list(conn: Connection, table: Table, request: ListRequest, ctx: CallContext) -> ListResult:
    """Count, then fetch one page, with a single compiled WHERE clause.

    Per-field search match counts ride along in the COUNT statement.
    """
    compiler = SqlListCompiler(table, conn.dialect.name)
    validate_list_request(compiler.schema, request)
    window = resolve_window(request.pagination)
    where = compiler.where_clause(request)
    order = compiler.order_by(request.sort)
    field_matches = compiler.search_field_matches(request.search)

    count_statement = compiler.count_statement(where, field_matches)
    counted = tuple(run_statement(conn, ctx, count_statement, f"count {table.name}").one())
    field_counts = {name: int(value) for name, value in zip(field_matches, counted[1:])}
    max_results = request.search.max_results if request.search is not None else 0
    total = cap_total(int(counted[0]), max_results)
    size = page_size(window, total)

    items: list[dict[str, Any]] = []
    if size > 0:
        statement = compiler.data_statement(where, order, size, window.offset)
        result = run_statement(conn, ctx, statement, f"select {table.name}")
        items = [row_to_record(row) for row in result.mappings()]

    search_results: list[SearchResult] = []
    metrics = None
    if request.search is not None:
        terms = tokenize(request.search.query)
        fields = resolve_search_fields(compiler.schema, request.search)
        for item in items if terms else []:
            scored = score_record(
                item,
                terms,
                fields,
                request.search.field_weights,
                highlight=request.search.enable_highlighting,
                fuzzy=request.search.enable_fuzzy,
            )
            search_results.append(scored or SearchResult(score=0.0))
        metrics = search_metrics(request.search, total, field_counts)
    return ListResult(
        items=items,
        search_results=search_results,
        search_metrics=metrics,
        pagination=paginate(total, window),
    )
