"""Hostname allocation: one stable external address per project.

The first successful publish of a project derives ``<slug>.<base_domain>``
(with a numeric suffix when another project already holds it). Every later
publish reuses that row and only moves its deployment pointer, so the
address survives redeploys.
"""

import re

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .logging_config import get_logger
from .models import Deployment, Hostname, Project
from .store import RecordNotFoundError, RecordStore

logger = get_logger(__name__)

DEFAULT_MAX_PROBES = 10_000

# Attempts when another project wins the race for the same candidate
_MAX_ALLOCATION_ATTEMPTS = 3

_FOLD_TO_DASH = re.compile(r"[\s_./]")
_DISALLOWED = re.compile(r"[^a-z0-9-]")
_DASH_RUNS = re.compile(r"-{2,}")


class AllocationExhaustedError(Exception):
    """Raised when every candidate up to the probe limit is taken."""

    def __init__(self, label: str, base_domain: str, max_probes: int):
        self.label = label
        self.base_domain = base_domain
        self.max_probes = max_probes
        super().__init__(
            f"No free hostname for '{label}.{base_domain}' after {max_probes} suffixes"
        )


def hostname_label(value: str) -> str:
    """Normalize a slug into a DNS label.

    Lower-cases, folds whitespace, underscores, dots and slashes to ``-``,
    drops anything outside ``[a-z0-9-]`` and trims stray dashes.

    >>> hostname_label("My_App.v2")
    'my-app-v2'
    """
    label = _DISALLOWED.sub("", _FOLD_TO_DASH.sub("-", value.lower()))
    return _DASH_RUNS.sub("-", label).strip("-")


def project_label(project: Project) -> str:
    """Label source for a project: slug, then name, then repo name."""
    for candidate in (project.slug, project.name, project.repo_name):
        label = hostname_label(candidate or "")
        if label:
            return label
    return "deploy"


class HostnameAllocator:
    """Assigns and reuses the persistent hostname of each project."""

    def __init__(
        self,
        store: RecordStore,
        base_domain: str,
        public_url: str = "http://",
        max_probes: int = DEFAULT_MAX_PROBES,
    ):
        self.store = store
        self.base_domain = base_domain
        self.public_url = public_url
        self.max_probes = max_probes

    def candidate(self, label: str, attempt: int) -> str:
        """Hostname tried on probe ``attempt`` (0 is the bare label)."""
        if attempt == 0:
            return f"{label}.{self.base_domain}"
        return f"{label}-{attempt}.{self.base_domain}"

    def full_url(self, hostname: str | None) -> str:
        """Browsable URL for a hostname, empty if there is none yet."""
        if not hostname:
            return ""
        return f"{self.public_url}{hostname}"

    async def allocate(self, project_id: int, deployment_id: int) -> str:
        """Return the project's hostname and point it at ``deployment_id``.

        Reuses the active row when the project has one; otherwise probes for
        a free name and creates it. The hostname is also written onto the
        deployment. All writes share one transaction.

        Raises:
            RecordNotFoundError: project or deployment does not exist.
            AllocationExhaustedError: no free candidate within ``max_probes``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.store.transaction() as session:
                    return await self._allocate(session, project_id, deployment_id)
            except IntegrityError:
                # Another project inserted the same candidate between our probe and insert
                if attempt >= _MAX_ALLOCATION_ATTEMPTS:
                    raise
                logger.warning(
                    "hostname_allocation_conflict",
                    project_id=project_id,
                    deployment_id=deployment_id,
                    attempt=attempt,
                )

    async def _allocate(self, session: AsyncSession, project_id: int, deployment_id: int) -> str:
        project = await session.get(Project, project_id)
        if project is None:
            raise RecordNotFoundError(f"Project {project_id} not found")
        deployment = await session.get(Deployment, deployment_id)
        if deployment is None:
            raise RecordNotFoundError(f"Deployment {deployment_id} not found")

        result = await session.execute(
            select(Hostname)
            .where(Hostname.project_id == project_id, Hostname.is_active.is_(True))
            .order_by(Hostname.id)
            .with_for_update()
        )
        active = result.scalars().first()

        if active is not None:
            await self._deactivate_others(session, project_id, keep_id=active.id)
            active.deployment_id = deployment_id
            deployment.hostname = active.hostname
            logger.info(
                "hostname_reused",
                project_id=project_id,
                deployment_id=deployment_id,
                hostname=active.hostname,
            )
            return active.hostname

        row = await self._probe(session, project)
        await self._deactivate_others(session, project_id, keep_id=row.id if row else None)

        if row is None:
            raise AllocationExhaustedError(project_label(project), self.base_domain, self.max_probes)

        row.deployment_id = deployment_id
        row.is_active = True
        if row.id is None:
            session.add(row)
        await session.flush()
        deployment.hostname = row.hostname

        logger.info(
            "hostname_allocated",
            project_id=project_id,
            deployment_id=deployment_id,
            hostname=row.hostname,
        )
        return row.hostname

    async def _probe(self, session: AsyncSession, project: Project) -> Hostname | None:
        """Find the first free candidate, or an inactive one this project already owns."""
        label = project_label(project)
        for attempt in range(self.max_probes + 1):
            hostname = self.candidate(label, attempt)
            result = await session.execute(select(Hostname).where(Hostname.hostname == hostname))
            existing = result.scalar_one_or_none()
            if existing is None:
                return Hostname(hostname=hostname, project_id=project.id)
            if existing.project_id == project.id:
                return existing
        return None

    @staticmethod
    async def _deactivate_others(
        session: AsyncSession, project_id: int, keep_id: int | None
    ) -> None:
        stmt = (
            update(Hostname)
            .where(Hostname.project_id == project_id, Hostname.is_active.is_(True))
            .values(is_active=False)
        )
        if keep_id is not None:
            stmt = stmt.where(Hostname.id != keep_id)
        await session.execute(stmt)
