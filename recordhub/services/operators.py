"""Backend independent meaning of every filter operator over a single value.

The in-memory evaluator calls these predicates directly; the SQL translator
reuses the coercion helpers (timestamps, list values, date bounds, regex source)
so both strategies compare against exactly the same literals.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from recordhub.core.errors import ValidationError
from recordhub.schemas.listing import (
    BooleanFilter,
    DateFilter,
    DateOperator,
    ListFilter,
    ListOperator,
    NumberFilter,
    NumberOperator,
    RangeFilter,
    StringFilter,
    StringOperator,
)
from recordhub.services.record_schema import FieldType

_TRUE_WORDS = {"1", "true", "yes", "y"}
_FALSE_WORDS = {"0", "false", "no", "n"}


def bad_filter_value(field: str, kind: str) -> ValidationError:
    return ValidationError(f'invalid {kind} filter value for field "{field}"', details={"field": field, "kind": kind})


def to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, Decimal):
        return float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(Decimal(text))
    except (InvalidOperation, ValueError):
        return None


def to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def to_utc(value: Any) -> datetime | None:
    """Normalize a stored timestamp to an aware UTC datetime.

    Naive datetimes are taken as UTC, ints and floats as epoch milliseconds.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return _parse_iso(value)
        except ValueError:
            return None
    return None


def _parse_iso(text: str) -> datetime:
    text = text.strip()
    if not text:
        raise ValueError("empty timestamp")
    if "T" not in text and " " not in text and len(text) == 10:
        parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
    else:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp(field: str, text: Any) -> datetime:
    if isinstance(text, datetime):
        return to_utc(text)
    try:
        return _parse_iso(str(text or ""))
    except ValueError:
        raise bad_filter_value(field, "date")


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def bad_field_value(field: str, kind: FieldType) -> ValidationError:
    return ValidationError(
        f'value for field "{field}" is not a valid {kind.value.lower()}',
        details={"field": field, "type": kind.value},
    )


def coerce_field_value(field: str, value: Any, field_type: FieldType | None) -> Any:
    """Convert one write payload value to the field type.

    ``None`` and untyped fields pass through unchanged. Numeric strings become
    ``int`` when integral, otherwise ``float``.
    """
    if value is None or field_type is None:
        return value
    if field_type is FieldType.STRING:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        raise bad_field_value(field, field_type)
    if field_type is FieldType.NUMBER:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            return value
        number = to_float(value)
        if number is None or not math.isfinite(number):
            raise bad_field_value(field, field_type)
        return int(number) if number.is_integer() else number
    if field_type is FieldType.BOOLEAN:
        flag = to_bool(value)
        if flag is None:
            raise bad_field_value(field, field_type)
        return flag
    moment = to_utc(value)
    if moment is None:
        raise bad_field_value(field, field_type)
    return moment


def regex_source(flt: StringFilter) -> str:
    # (?i) is understood by both Python re and PostgreSQL AREs
    if flt.case_sensitive:
        return flt.value
    return "(?i)" + flt.value


def compile_pattern(field: str, flt: StringFilter) -> re.Pattern:
    try:
        return re.compile(regex_source(flt))
    except re.error as exc:
        raise ValidationError(
            f'invalid regular expression for field "{field}": {exc}',
            details={"field": field, "pattern": flt.value},
        ) from exc


@dataclass(frozen=True)
class DateBounds:
    start: datetime | None = None
    end: datetime | None = None
    include_start: bool = True
    include_end: bool = False

    def contains(self, moment: datetime) -> bool:
        if self.start is not None:
            if moment < self.start or (moment == self.start and not self.include_start):
                return False
        if self.end is not None:
            if moment > self.end or (moment == self.end and not self.include_end):
                return False
        return True


def date_bounds(field: str, flt: DateFilter) -> DateBounds | None:
    """Interval selected by a date filter; ``None`` when the filter is a no-op."""
    if flt.operator is DateOperator.BETWEEN and not (flt.range_end or "").strip():
        return None
    value = parse_timestamp(field, flt.value)
    match flt.operator:
        case DateOperator.EQUALS:
            day_start = value.replace(hour=0, minute=0, second=0, microsecond=0)
            return DateBounds(start=day_start, end=day_start + timedelta(days=1), include_start=True, include_end=False)
        case DateOperator.BEFORE:
            return DateBounds(end=value, include_end=False)
        case DateOperator.AFTER:
            return DateBounds(start=value, include_start=False)
        case DateOperator.BETWEEN:
            end = parse_timestamp(field, flt.range_end)
            return DateBounds(start=value, end=end, include_start=True, include_end=True)
    raise ValidationError(f'unsupported date operator "{flt.operator}" for field "{field}"')


def coerce_list_values(values: list[str], field_type: FieldType | None) -> list[Any]:
    """List filter literals converted to the field type; uncoercible literals are dropped."""
    out: list[Any] = []
    for raw in values:
        if field_type is FieldType.NUMBER:
            coerced = to_float(raw)
        elif field_type is FieldType.BOOLEAN:
            coerced = to_bool(raw)
        elif field_type is FieldType.TIMESTAMP:
            coerced = to_utc(raw)
        else:
            coerced = raw
        if coerced is not None and coerced not in out:
            out.append(coerced)
    return out


def _value_type(value: Any) -> FieldType | None:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return FieldType.NUMBER
    if isinstance(value, (datetime, date)):
        return FieldType.TIMESTAMP
    if isinstance(value, str):
        return FieldType.STRING
    return None


def _normalized(value: Any, field_type: FieldType | None) -> Any:
    if field_type is FieldType.NUMBER:
        return to_float(value)
    if field_type is FieldType.BOOLEAN:
        return to_bool(value)
    if field_type is FieldType.TIMESTAMP:
        return to_utc(value)
    return to_text(value)


def is_noop(condition: Any) -> bool:
    if isinstance(condition, ListFilter):
        return not condition.values
    if isinstance(condition, DateFilter):
        return condition.operator is DateOperator.BETWEEN and not (condition.range_end or "").strip()
    return False


def string_matches(value: Any, flt: StringFilter) -> bool:
    text = to_text(value)
    if text is None:
        return False
    if flt.operator is StringOperator.REGEX:
        return re.search(regex_source(flt), text) is not None
    needle = flt.value
    if not flt.case_sensitive:
        text = text.lower()
        needle = needle.lower()
    match flt.operator:
        case StringOperator.EQUALS:
            return text == needle
        case StringOperator.NOT_EQUALS:
            return text != needle
        case StringOperator.CONTAINS:
            return needle in text
        case StringOperator.STARTS_WITH:
            return text.startswith(needle)
        case StringOperator.ENDS_WITH:
            return text.endswith(needle)
    raise ValidationError(f'unsupported string operator "{flt.operator}"')


def number_matches(value: Any, flt: NumberFilter) -> bool:
    number = to_float(value)
    if number is None:
        return False
    match flt.operator:
        case NumberOperator.EQUALS:
            return number == flt.value
        case NumberOperator.NOT_EQUALS:
            return number != flt.value
        case NumberOperator.GT:
            return number > flt.value
        case NumberOperator.GTE:
            return number >= flt.value
        case NumberOperator.LT:
            return number < flt.value
        case NumberOperator.LTE:
            return number <= flt.value
    raise ValidationError(f'unsupported number operator "{flt.operator}"')


def boolean_matches(value: Any, flt: BooleanFilter) -> bool:
    flag = to_bool(value)
    return flag is not None and flag == flt.value


def range_matches(value: Any, flt: RangeFilter) -> bool:
    number = to_float(value)
    if number is None:
        return False
    above = number > flt.min or (flt.include_min and number == flt.min)
    below = number < flt.max or (flt.include_max and number == flt.max)
    return above and below


def list_matches(value: Any, flt: ListFilter, field_type: FieldType | None = None) -> bool:
    if not flt.values:
        return True
    if value is None:
        return False
    kind = field_type or _value_type(value)
    current = _normalized(value, kind)
    if current is None:
        return False
    member = current in coerce_list_values(flt.values, kind)
    if flt.operator is ListOperator.IN:
        return member
    if flt.operator is ListOperator.NOT_IN:
        return not member
    raise ValidationError(f'unsupported list operator "{flt.operator}"')


def date_matches(value: Any, flt: DateFilter, field: str = "") -> bool:
    bounds = date_bounds(field, flt)
    if bounds is None:
        return True
    moment = to_utc(value)
    if moment is None:
        return False
    return bounds.contains(moment)


def matches(value: Any, condition: Any, field_type: FieldType | None = None, field: str = "") -> bool:
    """Whether a single record value passes one filter condition."""
    match condition:
        case StringFilter():
            return string_matches(value, condition)
        case NumberFilter():
            return number_matches(value, condition)
        case BooleanFilter():
            return boolean_matches(value, condition)
        case ListFilter():
            return list_matches(value, condition, field_type)
        case RangeFilter():
            return range_matches(value, condition)
        case DateFilter():
            return date_matches(value, condition, field)
    raise ValidationError(f'unsupported filter kind for field "{field}"')


def sort_key(value: Any) -> tuple | None:
    """Comparable key for one value; ``None`` stays ``None`` so callers can place nulls."""
    if value is None:
        return None
    if isinstance(value, (bool, int, float, Decimal)):
        return (0, float(value))
    if isinstance(value, (datetime, date)):
        return (1, to_utc(value))
    return (2, str(value))
