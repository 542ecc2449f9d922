from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from recordhub.core.errors import ValidationError

MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = 100
MAX_SEARCH_RESULTS = 1000


class StringOperator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    REGEX = "REGEX"


class NumberOperator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"


class ListOperator(str, Enum):
    IN = "IN"
    NOT_IN = "NOT_IN"


class DateOperator(str, Enum):
    EQUALS = "EQUALS"
    BEFORE = "BEFORE"
    AFTER = "AFTER"
    BETWEEN = "BETWEEN"


class FilterLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class NullOrder(str, Enum):
    DEFAULT = "DEFAULT"
    NULLS_FIRST = "NULLS_FIRST"
    NULLS_LAST = "NULLS_LAST"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case accepted too; unknown keys rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)


class StringFilter(WireModel):
    kind: Literal["string"] = "string"
    value: str
    operator: StringOperator = StringOperator.EQUALS
    case_sensitive: bool = False


class NumberFilter(WireModel):
    kind: Literal["number"] = "number"
    value: float
    operator: NumberOperator = NumberOperator.EQUALS


class BooleanFilter(WireModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class ListFilter(WireModel):
    kind: Literal["list"] = "list"
    values: List[str] = []
    operator: ListOperator = ListOperator.IN

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [v if isinstance(v, str) else _literal_text(v) for v in value]
        return value


class RangeFilter(WireModel):
    kind: Literal["range"] = "range"
    min: float
    max: float
    include_min: bool = False
    include_max: bool = False


class DateFilter(WireModel):
    kind: Literal["date"] = "date"
    value: str
    operator: DateOperator = DateOperator.EQUALS
    range_end: Optional[str] = None


FilterCondition = Annotated[
    Union[StringFilter, NumberFilter, BooleanFilter, ListFilter, RangeFilter, DateFilter],
    Field(discriminator="kind"),
]

_WIRE_KINDS = {
    "stringFilter": "string",
    "string_filter": "string",
    "numberFilter": "number",
    "number_filter": "number",
    "booleanFilter": "boolean",
    "boolean_filter": "boolean",
    "listFilter": "list",
    "list_filter": "list",
    "rangeFilter": "range",
    "range_filter": "range",
    "dateFilter": "date",
    "date_filter": "date",
}


class TypedFilter(WireModel):
    """One field plus exactly one filter kind.

    Accepts the envelope form ``{"field": "name", "stringFilter": {...}}`` as well
    as ``TypedFilter(field="name", condition=StringFilter(...))``.
    """

    field: str
    condition: FilterCondition

    @model_validator(mode="before")
    @classmethod
    def _from_envelope(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "condition" in data:
            return data
        present = [key for key in _WIRE_KINDS if data.get(key) is not None]
        if len(present) != 1:
            raise ValueError(f"exactly one filter kind must be set, got {len(present)}")
        key = present[0]
        payload = data[key]
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        if not isinstance(payload, dict):
            raise ValueError(f"{key} must be an object")
        out = {k: v for k, v in data.items() if k not in _WIRE_KINDS}
        out["condition"] = {**payload, "kind": _WIRE_KINDS[key]}
        return out

    @field_validator("field")
    @classmethod
    def _field_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field must not be empty")
        return value

    def to_envelope(self) -> dict[str, Any]:
        payload = self.condition.model_dump(by_alias=True, exclude={"kind"})
        return {"field": self.field, f"{self.condition.kind}Filter": payload}


class FilterRequest(WireModel):
    filters: List[TypedFilter] = []
    logic: FilterLogic = FilterLogic.AND


class SortField(WireModel):
    field: str
    direction: SortDirection = SortDirection.ASC
    null_order: NullOrder = NullOrder.DEFAULT


class SortRequest(WireModel):
    fields: List[SortField] = Field(min_length=1)


class OffsetPage(WireModel):
    page: int = Field(1, ge=1)


class CursorPage(WireModel):
    token: str = ""
    limit: Optional[int] = Field(None, ge=1, le=MAX_PAGE_LIMIT)


class PaginationRequest(WireModel):
    limit: int = Field(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)
    offset: Optional[OffsetPage] = None
    cursor: Optional[CursorPage] = None

    @model_validator(mode="after")
    def _one_mode(self) -> "PaginationRequest":
        if self.offset is not None and self.cursor is not None:
            raise ValueError("offset and cursor pagination are mutually exclusive")
        return self


class SearchRequest(WireModel):
    query: str = ""
    search_fields: List[str] = Field(
        default=[],
        validation_alias=AliasChoices("searchFields", "search_fields", "fields"),
    )
    max_results: int = Field(0, ge=0, le=MAX_SEARCH_RESULTS)
    field_weights: dict[str, float] = {}
    enable_highlighting: bool = True
    enable_fuzzy: bool = False


class ListRequest(WireModel):
    filters: Optional[FilterRequest] = None
    sort: Optional[SortRequest] = None
    pagination: Optional[PaginationRequest] = None
    search: Optional[SearchRequest] = None

    @model_validator(mode="before")
    @classmethod
    def _bare_lists(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if isinstance(data.get("filters"), list):
            data["filters"] = {"filters": data["filters"]}
        if isinstance(data.get("sort"), list):
            data["sort"] = {"fields": data["sort"]} if data["sort"] else None
        return data


class PaginationResponse(WireModel):
    total_items: int
    current_page: int
    total_pages: int
    has_next: bool
    has_prev: bool
    next_token: Optional[str] = None


class HighlightSpan(WireModel):
    field: str
    start: int
    end: int


class SearchResult(WireModel):
    score: float
    highlights: List[HighlightSpan] = []


class SearchMetrics(WireModel):
    total_results: int
    top_terms: List[str] = []
    field_match_counts: dict[str, int] = {}


class ListResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[dict[str, Any]]
    search_results: List[SearchResult] = []
    search_metrics: Optional[SearchMetrics] = None
    pagination: PaginationResponse


def _literal_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_list_request(payload: Any) -> ListRequest:
    """Build a ListRequest from a decoded JSON envelope, raising our ValidationError."""
    if payload is None:
        return ListRequest()
    if isinstance(payload, ListRequest):
        return payload
    try:
        return ListRequest.model_validate(payload)
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        where = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid list request")
        raise ValidationError(
            f"{where}: {message}" if where else message,
            details={"errors": errors},
        ) from exc
