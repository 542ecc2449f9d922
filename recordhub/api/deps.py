from __future__ import annotations

import importlib
import pkgutil
from functools import lru_cache

import recordhub.models as models_pkg
from recordhub.core.config import settings
from recordhub.core.context import CallContext
from recordhub.db.session import Base, get_engine
from recordhub.services.record_schema import RecordSchema
from recordhub.services.repository import RepositoryRegistry, build_repositories


@lru_cache(maxsize=1)
def table_model_map() -> dict[str, type]:
    for module in pkgutil.iter_modules(models_pkg.__path__):
        if module.name.startswith("_"):
            continue
        importlib.import_module(f"{models_pkg.__name__}.{module.name}")
    return {
        mapper.class_.__tablename__: mapper.class_
        for mapper in Base.registry.mappers
        if getattr(mapper.class_, "__tablename__", None)
    }


def model_schemas(tables: list[str] | None = None) -> list[RecordSchema]:
    models = table_model_map()
    names = tables or sorted(models)
    unknown = [name for name in names if name not in models]
    if unknown:
        raise ValueError(f"RECORD_TABLES names unknown tables: {', '.join(unknown)}")
    return [RecordSchema.from_model(models[name]) for name in names]


@lru_cache(maxsize=1)
def get_registry() -> RepositoryRegistry:
    return build_repositories(
        settings.RECORD_BACKEND,
        model_schemas(settings.record_tables_list),
        engine=get_engine() if settings.RECORD_BACKEND == "sql" else None,
    )


def get_call_context() -> CallContext:
    return CallContext.with_timeout_seconds(settings.QUERY_TIMEOUT_SECONDS)
