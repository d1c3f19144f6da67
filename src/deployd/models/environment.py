"""Per-project environment variables."""

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class EnvironmentVariable(Base):
    """Key/value forwarded to the project's workload at publish time."""

    __tablename__ = "environment_variables"
    __table_args__ = (UniqueConstraint("project_id", "key", name="uq_env_project_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    key: Mapped[str] = mapped_column(String(255))
    # Stored as plain text
    value: Mapped[str] = mapped_column(Text, default="")
