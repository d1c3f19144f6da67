"""Deployment model and its lifecycle."""

from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .project import Project


class DeploymentStatus(str, Enum):
    """Deployment lifecycle status."""

    PENDING = "pending"  # Created by ingestion, waiting in the queue
    BUILDING = "building"  # Picked up by a worker
    DEPLOYING = "deploying"  # Image built, publishing
    DEPLOYED = "deployed"  # Reachable at the project hostname
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DeploymentStatus.DEPLOYED, DeploymentStatus.FAILED})

# Allowed forward moves; FAILED is reachable from every non-terminal state
ALLOWED_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.PENDING: frozenset({DeploymentStatus.BUILDING, DeploymentStatus.FAILED}),
    DeploymentStatus.BUILDING: frozenset({DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}),
    DeploymentStatus.DEPLOYING: frozenset({DeploymentStatus.DEPLOYED, DeploymentStatus.FAILED}),
    DeploymentStatus.DEPLOYED: frozenset(),
    DeploymentStatus.FAILED: frozenset(),
}


def can_transition(current: DeploymentStatus, target: DeploymentStatus) -> bool:
    """Check whether ``current -> target`` is a legal lifecycle move."""
    return target in ALLOWED_TRANSITIONS[current]


class Deployment(Base):
    """One build-and-publish attempt for a project at a specific commit."""

    __tablename__ = "deployments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )

    status: Mapped[str] = mapped_column(
        String(50), default=DeploymentStatus.PENDING.value, index=True
    )

    commit_sha: Mapped[str] = mapped_column(String(64))
    commit_message: Mapped[str] = mapped_column(Text, default="")
    branch: Mapped[str] = mapped_column(String(255), default="main")

    # Filled in by the pipeline as the deployment progresses
    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_tag: Mapped[str | None] = mapped_column(String(512), nullable=True)
    namespace: Mapped[str | None] = mapped_column(String(255), nullable=True)
    workload_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    project: Mapped[Project] = relationship(lazy="joined", innerjoin=True)

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:7]

    def __repr__(self) -> str:
        return (
            f"<Deployment(id={self.id}, project={self.project_id}, "
            f"commit={self.short_sha}, status={self.status})>"
        )
