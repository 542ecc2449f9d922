from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from recordhub.core.ids import uuid4_id


def utcnow():
    return datetime.now(timezone.utc)


class RecordMixin:
    """Columns every record table carries: identifier, soft-delete flag and audit timestamps."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid4_id)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    date_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
