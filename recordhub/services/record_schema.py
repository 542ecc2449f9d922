from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, Numeric, String, Table, Text
from sqlalchemy import Enum as SAEnum

REQUIRED_FIELDS = ("id", "active", "date_created", "date_modified")


class FieldType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"


def _column_field_type(column: Any) -> FieldType | None:
    col_type = column.type
    if isinstance(col_type, Boolean):
        return FieldType.BOOLEAN
    if isinstance(col_type, (Integer, Numeric, Float)):
        return FieldType.NUMBER
    if isinstance(col_type, (DateTime, Date)):
        return FieldType.TIMESTAMP
    if isinstance(col_type, (String, Text, SAEnum)):
        return FieldType.STRING
    return None


def _value_field_type(value: Any) -> FieldType | None:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return FieldType.NUMBER
    if isinstance(value, (datetime, date)):
        return FieldType.TIMESTAMP
    if isinstance(value, str):
        return FieldType.STRING
    return None


@dataclass(frozen=True)
class RecordSchema:
    """Field names and coarse types of one record collection.

    A ``None`` type means the field exists but its type is unknown; such fields
    can be filtered and sorted without kind checks but are never searched.
    ``not_null`` lists fields that reject ``None``; ``required`` is the subset a
    create payload must supply (no column default and not stamped by the facade).
    """

    table: str
    fields: Mapping[str, FieldType | None] = field(default_factory=dict)
    not_null: frozenset[str] = field(default_factory=frozenset)
    required: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_table(cls, table: Table) -> "RecordSchema":
        not_null = frozenset(c.name for c in table.columns if not c.nullable)
        required = frozenset(
            c.name
            for c in table.columns
            if not c.nullable
            and c.default is None
            and c.server_default is None
            and c.name not in REQUIRED_FIELDS
        )
        return cls(
            table=table.name,
            fields={c.name: _column_field_type(c) for c in table.columns},
            not_null=not_null,
            required=required,
        )

    @classmethod
    def from_model(cls, model: Any) -> "RecordSchema":
        return cls.from_table(model.__table__)

    @classmethod
    def infer(cls, records: Iterable[Mapping[str, Any]], table: str = "") -> "RecordSchema":
        fields: dict[str, FieldType | None] = {}
        for record in records:
            for name, value in record.items():
                if fields.get(name) is None:
                    fields[name] = _value_field_type(value)
        return cls(table=table, fields=fields)

    def has(self, name: str) -> bool:
        return name in self.fields

    def type_of(self, name: str) -> FieldType | None:
        return self.fields.get(name)

    @property
    def string_fields(self) -> list[str]:
        return [name for name, kind in self.fields.items() if kind is FieldType.STRING]
