from __future__ import annotations

from recordhub.core.errors import ValidationError
from recordhub.schemas.listing import FilterRequest, ListRequest, SearchRequest, SortRequest, StringFilter, StringOperator
from recordhub.services import operators
from recordhub.services.pagination import resolve_window
from recordhub.services.record_schema import FieldType, RecordSchema

_ALLOWED_KINDS = {
    FieldType.STRING: {"string", "list"},
    FieldType.NUMBER: {"number", "range", "list"},
    FieldType.BOOLEAN: {"boolean", "list"},
    FieldType.TIMESTAMP: {"date"},
}


def _require_field(schema: RecordSchema, name: str, purpose: str) -> FieldType | None:
    if not isinstance(name, str) or not schema.has(name):
        raise ValidationError(
            f'unknown {purpose} field "{name}"',
            details={"field": name, "table": schema.table},
        )
    return schema.type_of(name)


def validate_filters(schema: RecordSchema, request: FilterRequest | None) -> None:
    if request is None:
        return
    for typed in request.filters:
        field_type = _require_field(schema, typed.field, "filter")
        condition = typed.condition
        if field_type is not None and condition.kind not in _ALLOWED_KINDS[field_type]:
            raise ValidationError(
                f'{condition.kind} filter cannot be applied to {field_type.value.lower()} field "{typed.field}"',
                details={"field": typed.field, "kind": condition.kind},
            )
        if isinstance(condition, StringFilter) and condition.operator is StringOperator.REGEX:
            operators.compile_pattern(typed.field, condition)
        elif condition.kind == "date":
            operators.date_bounds(typed.field, condition)


def validate_sort(schema: RecordSchema, request: SortRequest | None) -> None:
    if request is None:
        return
    for item in request.fields:
        _require_field(schema, item.field, "sort")


def resolve_search_fields(schema: RecordSchema, request: SearchRequest | None) -> list[str]:
    """Fields a search scans: the requested ones, or every string field of the schema."""
    if request is None:
        return []
    if not request.search_fields:
        return schema.string_fields
    fields: list[str] = []
    for name in request.search_fields:
        field_type = _require_field(schema, name, "search")
        if field_type is not FieldType.STRING:
            raise ValidationError(f'search field "{name}" is not a string field', details={"field": name})
        if name not in fields:
            fields.append(name)
    return fields


def validate_search(schema: RecordSchema, request: SearchRequest | None) -> None:
    if request is None:
        return
    resolve_search_fields(schema, request)
    for name, weight in request.field_weights.items():
        _require_field(schema, name, "search weight")
        if weight < 0:
            raise ValidationError(f'search weight for "{name}" must not be negative', details={"field": name})


def validate_list_request(schema: RecordSchema, request: ListRequest) -> None:
    """Reject unknown fields, mismatched filter kinds, bad regexes, dates and cursors."""
    validate_filters(schema, request.filters)
    validate_sort(schema, request.sort)
    validate_search(schema, request.search)
    resolve_window(request.pagination)
