from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recordhub.db.session import Base
from recordhub.models.common import RecordMixin


class Role(Base, RecordMixin):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permission_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
