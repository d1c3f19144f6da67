"""Hostname allocation model."""

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Hostname(Base):
    """Durable external address of a project.

    At most one row per project is active. Redeploys move ``deployment_id``
    on the active row instead of inserting new rows.
    """

    __tablename__ = "hostnames"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hostname: Mapped[str] = mapped_column(String(255), unique=True)

    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    deployment_id: Mapped[int] = mapped_column(ForeignKey("deployments.id"), index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return (
            f"<Hostname(hostname={self.hostname}, project={self.project_id}, "
            f"deployment={self.deployment_id}, active={self.is_active})>"
        )
