from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recordhub.db.session import Base
from recordhub.models.common import RecordMixin


class PricePlan(Base, RecordMixin):
    __tablename__ = "price_plans"

    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    billing_cycle: Mapped[str | None] = mapped_column(String(20), nullable=True)
    trial_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_public: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
