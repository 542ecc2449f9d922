from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response

from recordhub.api.deps import get_call_context, get_registry
from recordhub.core.context import CallContext
from recordhub.services.repository import RecordRepository, RepositoryRegistry

router = APIRouter()


def _repository_or_404(registry: RepositoryRegistry, table_name: str) -> RecordRepository:
    repository = registry.get(str(table_name or "").strip())
    if repository is None:
        raise HTTPException(status_code=404, detail="Table not found")
    return repository


@router.post("/{table_name}/query")
def query_records(
    table_name: str,
    payload: Optional[dict[str, Any]] = Body(default=None),
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    repository = _repository_or_404(registry, table_name)
    return repository.list(ctx, payload).model_dump(by_alias=True)


@router.get("/{table_name}/{record_id}")
def get_record(
    table_name: str,
    record_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    return _repository_or_404(registry, table_name).read(ctx, record_id)


@router.post("/{table_name}", status_code=201)
def create_record(
    table_name: str,
    payload: dict[str, Any],
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    return _repository_or_404(registry, table_name).create(ctx, payload)


@router.patch("/{table_name}/{record_id}")
def update_record(
    table_name: str,
    record_id: str,
    payload: dict[str, Any],
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    return _repository_or_404(registry, table_name).update(ctx, record_id, payload)


@router.delete("/{table_name}/{record_id}", status_code=204)
def delete_record(
    table_name: str,
    record_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    _repository_or_404(registry, table_name).delete(ctx, record_id)
    return Response(status_code=204)


@router.delete("/{table_name}/{record_id}/hard", status_code=204)
def hard_delete_record(
    table_name: str,
    record_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
    ctx: CallContext = Depends(get_call_context),
):
    _repository_or_404(registry, table_name).hard_delete(ctx, record_id)
    return Response(status_code=204)
