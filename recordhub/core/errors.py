from __future__ import annotations

from typing import Any


class RecordError(Exception):
    code = "RECORD_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = dict(details or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(RecordError):
    """Malformed request: unknown field or operator, bad limit, bad literal.

    Always raised before any statement reaches the database.
    """

    code = "VALIDATION_ERROR"


class SchemaError(RecordError):
    code = "SCHEMA_ERROR"


class NotFoundError(RecordError):
    code = "RECORD_NOT_FOUND"

    def __init__(self, table: str, record_id: str):
        super().__init__(f'record "{record_id}" not found in "{table}"', details={"table": table, "id": record_id})
        self.table = table
        self.record_id = record_id


QUERY_FAILED = "failed"
QUERY_CANCELLED = "cancelled"
QUERY_DEADLINE = "deadline"


class QueryError(RecordError):
    code = "QUERY_FAILED"

    def __init__(
        self,
        message: str,
        *,
        reason: str = QUERY_FAILED,
        operation: str | None = None,
        retryable: bool | None = None,
    ):
        code = {
            QUERY_CANCELLED: "QUERY_CANCELLED",
            QUERY_DEADLINE: "QUERY_DEADLINE_EXCEEDED",
        }.get(reason, "QUERY_FAILED")
        super().__init__(message, code=code, details={"operation": operation} if operation else None)
        self.reason = reason
        self.operation = operation
        self.retryable = reason != QUERY_FAILED if retryable is None else retryable

    @property
    def is_timeout(self) -> bool:
        return self.reason in {QUERY_CANCELLED, QUERY_DEADLINE}
