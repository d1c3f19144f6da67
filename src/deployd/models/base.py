"""Declarative base shared by every deployd table."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Every row records when it was created and last written."""

    # Rows are handed out after their session closes, so server defaults are loaded on flush
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def to_dict(self) -> dict[str, Any]:
        """Mapped column values by attribute name, as printed by ``--json``."""
        return {attr.key: getattr(self, attr.key) for attr in self.__mapper__.column_attrs}
