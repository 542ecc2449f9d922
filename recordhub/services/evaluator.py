from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from recordhub.schemas.listing import (
    FilterLogic,
    FilterRequest,
    ListRequest,
    ListResult,
    NullOrder,
    SortDirection,
    SortField,
    SortRequest,
)
from recordhub.services import operators
from recordhub.services.pagination import cap_total, page_size, paginate, resolve_window
from recordhub.services.record_schema import RecordSchema
from recordhub.services.search import search_metrics, search_records
from recordhub.services.validation import resolve_search_fields, validate_list_request

_LOG = logging.getLogger("recordhub.evaluator")


def _passes(record: Mapping[str, Any], request: FilterRequest | None, schema: RecordSchema) -> bool:
    if request is None:
        return True
    active = [typed for typed in request.filters if not operators.is_noop(typed.condition)]
    if not active:
        return True
    checks = (
        operators.matches(record.get(typed.field), typed.condition, schema.type_of(typed.field), typed.field)
        for typed in active
    )
    if request.logic is FilterLogic.OR:
        return any(checks)
    return all(checks)


def filter_records(
    records: Iterable[Mapping[str, Any]],
    request: FilterRequest | None,
    schema: RecordSchema,
) -> list[Mapping[str, Any]]:
    return [record for record in records if _passes(record, request, schema)]


def _nulls_first(item: SortField) -> bool:
    if item.null_order is NullOrder.NULLS_FIRST:
        return True
    if item.null_order is NullOrder.NULLS_LAST:
        return False
    # nulls compare as the largest value
    return item.direction is SortDirection.DESC


def _key_for(item: SortField) -> Callable[[Mapping[str, Any]], tuple]:
    descending = item.direction is SortDirection.DESC
    nulls_first = _nulls_first(item)
    # rank is applied before reverse=True flips the order
    null_rank = 1 if nulls_first == descending else 0
    value_rank = 1 - null_rank

    def key(record: Mapping[str, Any]) -> tuple:
        value = operators.sort_key(record.get(item.field))
        if value is None:
            return (null_rank, ())
        return (value_rank, value)

    return key


def sort_records(records: Iterable[Mapping[str, Any]], request: SortRequest | None) -> list[Mapping[str, Any]]:
    """Stable multi-key sort: the first sort field is the primary key, input order breaks ties."""
    ordered = list(records)
    if request is None:
        return ordered
    for item in reversed(request.fields):
        ordered.sort(key=_key_for(item), reverse=item.direction is SortDirection.DESC)
    return ordered


def evaluate_list(
    records: Iterable[Mapping[str, Any]],
    request: ListRequest | None = None,
    schema: RecordSchema | None = None,
) -> ListResult:
    """Filter, sort, search and paginate already materialized records.

    Without ``schema`` the field set is the union of record keys, so on empty
    input every named field is unknown.
    """
    request = request or ListRequest()
    rows = [dict(record) for record in records]
    if schema is None:
        schema = RecordSchema.infer(rows)
    validate_list_request(schema, request)
    window = resolve_window(request.pagination)

    matched = filter_records(rows, request.filters, schema)
    ordered = sort_records(matched, request.sort)
    search_fields = resolve_search_fields(schema, request.search)
    found, results, field_counts = search_records(ordered, request.search, search_fields)

    max_results = request.search.max_results if request.search is not None else 0
    total = cap_total(len(found), max_results)
    end = window.offset + page_size(window, total)
    items = found[window.offset:end]
    page_results = results[window.offset:end] if results else []
    _LOG.debug(
        "evaluated list table=%s input=%s matched=%s total=%s page=%s",
        schema.table or "-",
        len(rows),
        len(matched),
        total,
        window.page,
    )
    metrics = search_metrics(request.search, total, field_counts) if request.search is not None else None
    return ListResult(
        items=items,
        search_results=page_results,
        search_metrics=metrics,
        pagination=paginate(total, window),
    )
