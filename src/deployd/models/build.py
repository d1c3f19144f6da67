"""Build log record, one per deployment."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class BuildStatus(str, Enum):
    """Image build status."""

    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


class Build(Base):
    """Image build attempt underlying a deployment."""

    __tablename__ = "builds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deployment_id: Mapped[int] = mapped_column(
        ForeignKey("deployments.id", ondelete="CASCADE"), unique=True, index=True
    )

    status: Mapped[str] = mapped_column(String(50), default=BuildStatus.BUILDING.value)

    # Builder output on success, error text on failure
    logs: Mapped[str] = mapped_column(Text, default="")

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
