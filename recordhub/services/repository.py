from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import Engine

from recordhub.core.context import CallContext
from recordhub.core.errors import ValidationError
from recordhub.core.ids import IdGenerator, uuid4_id
from recordhub.models.common import utcnow
from recordhub.schemas.listing import ListRequest, ListResult, parse_list_request
from recordhub.services import operators
from recordhub.services.backends import BACKEND_FACTORIES, RecordBackend
from recordhub.services.record_schema import REQUIRED_FIELDS, RecordSchema
from recordhub.services.validation import validate_list_request

_LOG = logging.getLogger("recordhub.repository")

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", key).lower()


def _require_id(record_id: Any) -> str:
    text = str(record_id or "").strip()
    if not text:
        raise ValidationError("record id must not be empty")
    return text


class RecordRepository:
    """CRUD with soft delete plus typed listing for one table.

    Stamps ``active`` and the audit timestamps itself, so every backend sees
    already enriched records. Holds configuration only.
    """

    def __init__(
        self,
        schema: RecordSchema,
        backend: RecordBackend,
        *,
        id_generator: IdGenerator = uuid4_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.schema = schema
        self.backend = backend
        self._id_generator = id_generator
        self._clock = clock

    @property
    def table(self) -> str:
        return self.schema.table

    def _now(self) -> datetime:
        return operators.to_utc(self._clock())

    def _prepare(self, data: Mapping[str, Any] | None, *, is_update: bool) -> dict[str, Any]:
        if data is not None and not isinstance(data, Mapping):
            raise ValidationError("record payload must be an object")
        record: dict[str, Any] = {}
        for raw_key, value in (data or {}).items():
            key = to_snake_case(str(raw_key))
            if not self.schema.has(key):
                # backends drop non-column keys
                record[key] = value
                continue
            # the facade stamps these itself on create
            stamped = not is_update and key in REQUIRED_FIELDS
            if value is None and key in self.schema.not_null and not stamped:
                raise ValidationError(f'field "{key}" must not be null', details={"field": key})
            record[key] = operators.coerce_field_value(key, value, self.schema.type_of(key))
        if not is_update:
            missing = sorted(name for name in self.schema.required if name not in record)
            if missing:
                raise ValidationError(
                    f"missing required fields: {', '.join(missing)}",
                    details={"missing": missing},
                )
        return record

    def create(self, ctx: CallContext, data: Mapping[str, Any]) -> dict[str, Any]:
        record = self._prepare(data, is_update=False)
        now = self._now()
        record["id"] = str(record.get("id") or self._id_generator())
        record["active"] = True
        record["date_created"] = now
        record["date_modified"] = now
        created = self.backend.insert(ctx, record)
        _LOG.info("created %s id=%s", self.table, created.get("id"))
        return created

    def read(self, ctx: CallContext, record_id: str) -> dict[str, Any]:
        return self.backend.fetch(ctx, _require_id(record_id))

    def update(self, ctx: CallContext, record_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        record_id = _require_id(record_id)
        changes = self._prepare(data, is_update=True)
        changes.pop("id", None)
        changes.pop("date_created", None)
        changes["date_modified"] = self._now()
        updated = self.backend.update(ctx, record_id, changes)
        _LOG.info("updated %s id=%s", self.table, record_id)
        return updated

    def delete(self, ctx: CallContext, record_id: str) -> None:
        record_id = _require_id(record_id)
        self.backend.soft_delete(ctx, record_id, self._now())
        _LOG.info("soft deleted %s id=%s", self.table, record_id)

    def hard_delete(self, ctx: CallContext, record_id: str) -> None:
        record_id = _require_id(record_id)
        self.backend.hard_delete(ctx, record_id)
        _LOG.info("hard deleted %s id=%s", self.table, record_id)

    def list(self, ctx: CallContext, request: ListRequest | Mapping[str, Any] | None = None) -> ListResult:
        request = parse_list_request(request)
        validate_list_request(self.schema, request)
        return self.backend.list(ctx, request)


class RepositoryRegistry:
    def __init__(self, repositories: Mapping[str, RecordRepository]):
        self._repositories = dict(repositories)

    def get(self, table: str) -> RecordRepository | None:
        return self._repositories.get(table)

    def __contains__(self, table: object) -> bool:
        return table in self._repositories

    @property
    def tables(self) -> list[str]:
        return sorted(self._repositories)


def build_repositories(
    backend_name: str,
    schemas: Iterable[RecordSchema],
    *,
    engine: Engine | None = None,
    id_generator: IdGenerator = uuid4_id,
    clock: Callable[[], datetime] = utcnow,
) -> RepositoryRegistry:
    """Wire one repository per schema onto the backend named in configuration."""
    factory_builder = BACKEND_FACTORIES.get((backend_name or "").strip().lower())
    if factory_builder is None:
        raise ValueError(f'unknown record backend "{backend_name}", expected one of {sorted(BACKEND_FACTORIES)}')
    factory = factory_builder(engine)
    repositories = {
        schema.table: RecordRepository(schema, factory(schema), id_generator=id_generator, clock=clock)
        for schema in schemas
    }
    _LOG.info("record backend=%s tables=%s", backend_name, ",".join(sorted(repositories)))
    return RepositoryRegistry(repositories)
