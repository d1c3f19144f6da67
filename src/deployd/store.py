"""Record store: durable projects, deployments, builds, hostnames and env vars.

Every public method runs in its own short transaction, so callers on
different workers never share a session. The hostname allocator needs a
multi-statement transaction and uses :meth:`RecordStore.transaction`
directly.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .logging_config import get_logger
from .models import (
    Build,
    BuildStatus,
    Deployment,
    DeploymentStatus,
    EnvironmentVariable,
    Hostname,
    Project,
    can_transition,
)

logger = get_logger(__name__)

# Deployment columns the pipeline may fill in alongside a status change
_DEPLOYMENT_FIELDS = frozenset({"hostname", "image_tag", "namespace", "workload_name"})
_PROJECT_FIELDS = frozenset({"owner_id", "name", "repo_url", "branch"})


class RecordNotFoundError(LookupError):
    """Raised when a referenced record does not exist."""


class DuplicateRecordError(Exception):
    """Raised when a write violates a uniqueness constraint."""


class InvalidTransitionError(Exception):
    """Raised on a deployment status change the lifecycle does not allow."""

    def __init__(self, deployment_id: int, current: str, target: str):
        self.deployment_id = deployment_id
        self.current = current
        self.target = target
        super().__init__(f"Deployment {deployment_id}: illegal transition {current} -> {target}")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecordStore:
    """Async record store on top of a SQLAlchemy session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with an open transaction; commits on exit, rolls back on error."""
        async with self._session_maker() as session:
            async with session.begin():
                yield session

    # -- projects ------------------------------------------------------------

    async def create_project(
        self,
        *,
        name: str,
        slug: str,
        repo_url: str,
        repo_owner: str,
        repo_name: str,
        branch: str = "main",
        owner_id: int | None = None,
    ) -> Project:
        project = Project(
            name=name,
            slug=slug,
            repo_url=repo_url,
            repo_owner=repo_owner,
            repo_name=repo_name,
            branch=branch or "main",
            owner_id=owner_id,
        )
        try:
            async with self.transaction() as session:
                session.add(project)
        except IntegrityError as e:
            raise DuplicateRecordError(
                f"Project with slug '{slug}' or repository '{repo_owner}/{repo_name}' exists"
            ) from e
        logger.info("project_created", project_id=project.id, slug=slug)
        return project

    async def get_project(self, project_id: int) -> Project:
        async with self._session_maker() as session:
            project = await session.get(Project, project_id)
        if project is None:
            raise RecordNotFoundError(f"Project {project_id} not found")
        return project

    async def get_project_by_slug(self, slug: str) -> Project | None:
        async with self._session_maker() as session:
            result = await session.execute(select(Project).where(Project.slug == slug))
            return result.scalar_one_or_none()

    async def find_project_by_repo(self, repo_owner: str, repo_name: str) -> Project | None:
        """Resolve a repository to its project ((owner, name) is unique)."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(Project).where(
                    Project.repo_owner == repo_owner, Project.repo_name == repo_name
                )
            )
            return result.scalar_one_or_none()

    async def list_projects(self) -> list[Project]:
        async with self._session_maker() as session:
            result = await session.execute(select(Project).order_by(Project.id))
            return list(result.scalars())

    async def update_project(self, project_id: int, **fields: Any) -> Project:
        unknown = set(fields) - _PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update project fields: {sorted(unknown)}")
        async with self.transaction() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise RecordNotFoundError(f"Project {project_id} not found")
            for key, value in fields.items():
                setattr(project, key, value)
        return project

    # -- deployments ---------------------------------------------------------

    async def create_deployment(
        self,
        project_id: int,
        commit_sha: str,
        commit_message: str = "",
        branch: str = "main",
    ) -> Deployment:
        """Create a pending deployment ready to be enqueued."""
        try:
            async with self.transaction() as session:
                deployment = Deployment(
                    project_id=project_id,
                    status=DeploymentStatus.PENDING.value,
                    commit_sha=commit_sha,
                    commit_message=commit_message,
                    branch=branch,
                )
                session.add(deployment)
        except IntegrityError as e:
            raise RecordNotFoundError(f"Project {project_id} not found") from e
        return await self.get_deployment(deployment.id)

    async def get_deployment(self, deployment_id: int) -> Deployment:
        async with self._session_maker() as session:
            deployment = await session.get(Deployment, deployment_id)
        if deployment is None:
            raise RecordNotFoundError(f"Deployment {deployment_id} not found")
        return deployment

    async def list_deployments(
        self, project_id: int | None = None, limit: int | None = None
    ) -> list[Deployment]:
        """Newest first."""
        query = select(Deployment).order_by(Deployment.id.desc())
        if project_id is not None:
            query = query.where(Deployment.project_id == project_id)
        if limit is not None:
            query = query.limit(limit)
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().unique())

    async def transition_deployment(
        self, deployment_id: int, status: DeploymentStatus, **fields: Any
    ) -> Deployment:
        """Move a deployment along its lifecycle, optionally recording fields.

        Raises:
            InvalidTransitionError: if the lifecycle forbids the move; the row
                is left untouched.
        """
        self._check_deployment_fields(fields)
        async with self.transaction() as session:
            deployment = await self._load_deployment(session, deployment_id, for_update=True)
            current = DeploymentStatus(deployment.status)
            if not can_transition(current, status):
                raise InvalidTransitionError(deployment_id, current.value, status.value)
            deployment.status = status.value
            for key, value in fields.items():
                setattr(deployment, key, value)

        logger.info(
            "deployment_status_changed",
            deployment_id=deployment_id,
            from_status=current.value,
            to_status=status.value,
        )
        return deployment

    async def fail_deployment(self, deployment_id: int) -> bool:
        """Mark a deployment failed unless it already reached a terminal state.

        Returns:
            True if the status changed.
        """
        async with self.transaction() as session:
            deployment = await self._load_deployment(session, deployment_id, for_update=True)
            current = DeploymentStatus(deployment.status)
            if current.is_terminal:
                return False
            deployment.status = DeploymentStatus.FAILED.value

        logger.info(
            "deployment_status_changed",
            deployment_id=deployment_id,
            from_status=current.value,
            to_status=DeploymentStatus.FAILED.value,
        )
        return True

    @staticmethod
    def _check_deployment_fields(fields: dict[str, Any]) -> None:
        unknown = set(fields) - _DEPLOYMENT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update deployment fields: {sorted(unknown)}")

    @staticmethod
    async def _load_deployment(
        session: AsyncSession, deployment_id: int, for_update: bool = False
    ) -> Deployment:
        deployment = await session.get(Deployment, deployment_id, with_for_update=for_update)
        if deployment is None:
            raise RecordNotFoundError(f"Deployment {deployment_id} not found")
        return deployment

    # -- builds --------------------------------------------------------------

    async def create_build(self, deployment_id: int) -> Build:
        build = Build(
            deployment_id=deployment_id,
            status=BuildStatus.BUILDING.value,
            logs="",
            started_at=_utcnow(),
        )
        try:
            async with self.transaction() as session:
                session.add(build)
        except IntegrityError as e:
            raise DuplicateRecordError(f"Deployment {deployment_id} already has a build") from e
        return build

    async def complete_build(self, build_id: int, status: BuildStatus, logs: str = "") -> Build:
        """Record the terminal status and log of a build."""
        async with self.transaction() as session:
            build = await session.get(Build, build_id)
            if build is None:
                raise RecordNotFoundError(f"Build {build_id} not found")
            build.status = status.value
            build.logs = logs
            build.completed_at = _utcnow()
        return build

    async def get_build(self, deployment_id: int) -> Build | None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Build).where(Build.deployment_id == deployment_id)
            )
            return result.scalar_one_or_none()

    # -- hostnames -----------------------------------------------------------

    async def create_hostname(
        self, hostname: str, project_id: int, deployment_id: int, is_active: bool = True
    ) -> Hostname:
        """Insert a hostname row as-is (imports and manual reservations)."""
        row = Hostname(
            hostname=hostname,
            project_id=project_id,
            deployment_id=deployment_id,
            is_active=is_active,
        )
        try:
            async with self.transaction() as session:
                session.add(row)
        except IntegrityError as e:
            raise DuplicateRecordError(f"Hostname '{hostname}' is already allocated") from e
        return row

    async def get_active_hostname(self, project_id: int) -> Hostname | None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Hostname)
                .where(Hostname.project_id == project_id, Hostname.is_active.is_(True))
                .order_by(Hostname.id)
            )
            return result.scalars().first()

    async def list_hostnames(self, project_id: int | None = None) -> list[Hostname]:
        query = select(Hostname).order_by(Hostname.id)
        if project_id is not None:
            query = query.where(Hostname.project_id == project_id)
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars())

    # -- environment ---------------------------------------------------------

    async def set_env_var(self, project_id: int, key: str, value: str) -> None:
        async with self.transaction() as session:
            if await session.get(Project, project_id) is None:
                raise RecordNotFoundError(f"Project {project_id} not found")
            result = await session.execute(
                select(EnvironmentVariable).where(
                    EnvironmentVariable.project_id == project_id,
                    EnvironmentVariable.key == key,
                )
            )
            var = result.scalar_one_or_none()
            if var is None:
                session.add(EnvironmentVariable(project_id=project_id, key=key, value=value))
            else:
                var.value = value

    async def delete_env_var(self, project_id: int, key: str) -> bool:
        async with self.transaction() as session:
            result = await session.execute(
                select(EnvironmentVariable).where(
                    EnvironmentVariable.project_id == project_id,
                    EnvironmentVariable.key == key,
                )
            )
            var = result.scalar_one_or_none()
            if var is None:
                return False
            await session.delete(var)
        return True

    async def get_env_vars(self, project_id: int) -> dict[str, str]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(EnvironmentVariable)
                .where(EnvironmentVariable.project_id == project_id)
                .order_by(EnvironmentVariable.key)
            )
            return {var.key: var.value for var in result.scalars()}
