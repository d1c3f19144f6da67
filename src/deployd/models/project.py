"""Project model."""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Project(Base):
    """A source repository bound to one deployable unit and one stable address."""

    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("repo_owner", "repo_name", name="uq_projects_repo"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Owning account; re-linking a repository moves it to another owner
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255), unique=True)

    # Repository coordinates (e.g. https://github.com/acme/shop, acme, shop)
    repo_url: Mapped[str] = mapped_column(String(512))
    repo_owner: Mapped[str] = mapped_column(String(255))
    repo_name: Mapped[str] = mapped_column(String(255))

    branch: Mapped[str] = mapped_column(String(255), default="main")

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, slug={self.slug}, repo={self.repo_owner}/{self.repo_name})>"
