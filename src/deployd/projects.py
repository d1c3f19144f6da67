"""Project registration and per-project environment variables."""

import re

from .logging_config import get_logger
from .models import Project
from .store import RecordStore

logger = get_logger(__name__)

DEFAULT_SLUG = "project"

# Names the container runtime accepts for environment variables
ENV_KEY_RE = re.compile(r"^[-._a-zA-Z][-._a-zA-Z0-9]*$")


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """``(owner, name)`` from an https or scp-style git URL.

    Raises:
        ValueError: the URL has no owner/name path.
    """
    path = repo_url.strip().rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if "://" in path:
        path = path.split("://", 1)[1].partition("/")[2]
    elif ":" in path:
        path = path.split(":", 1)[1]
    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        raise ValueError(f"Cannot determine repository owner and name from {repo_url!r}")
    return parts[-2], parts[-1]


def generate_slug(name: str) -> str:
    """Slug from a display name: ASCII letters and digits kept, separators to ``-``."""
    chars = []
    for char in name:
        if char.isascii() and char.isalnum():
            chars.append(char)
        elif char in " -_":
            chars.append("-")
    return "".join(chars) or DEFAULT_SLUG


class ProjectService:
    """Registration rules on top of the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def register(
        self,
        *,
        owner_id: int | None,
        name: str,
        repo_url: str,
        repo_owner: str,
        repo_name: str,
        branch: str = "",
    ) -> Project:
        """Register a repository, or re-link it if it is already known.

        A repository maps to exactly one project. Registering it again moves
        the existing project to ``owner_id`` and returns it unchanged otherwise.

        Raises:
            DuplicateRecordError: the derived slug is taken by another repository.
        """
        existing = await self.store.find_project_by_repo(repo_owner, repo_name)
        if existing is not None:
            if existing.owner_id != owner_id:
                existing = await self.store.update_project(existing.id, owner_id=owner_id)
                logger.info("project_relinked", project_id=existing.id, owner_id=owner_id)
            return existing

        return await self.store.create_project(
            name=name,
            slug=generate_slug(name),
            repo_url=repo_url,
            repo_owner=repo_owner,
            repo_name=repo_name,
            branch=branch or "main",
            owner_id=owner_id,
        )

    async def set_env(self, project_id: int, key: str, value: str) -> None:
        if not ENV_KEY_RE.match(key):
            raise ValueError(f"Invalid environment variable name: {key!r}")
        await self.store.set_env_var(project_id, key, value)
        logger.info("project_env_set", project_id=project_id, key=key)

    async def unset_env(self, project_id: int, key: str) -> bool:
        removed = await self.store.delete_env_var(project_id, key)
        if removed:
            logger.info("project_env_unset", project_id=project_id, key=key)
        return removed

    async def env_for(self, project_id: int) -> dict[str, str]:
        return await self.store.get_env_vars(project_id)
