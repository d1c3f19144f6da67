"""Shared fixtures: a throwaway SQLite record store and fake collaborators."""

import asyncio
from pathlib import Path

import pytest

from deployd.build_queue import BuildQueue
from deployd.database import create_engine, create_session_maker, init_models
from deployd.hostnames import HostnameAllocator
from deployd.locks import ProjectLocks
from deployd.pipeline import BuildPipeline
from deployd.publisher import ResourceExistsError, WorkloadPublisher, WorkloadSpec
from deployd.store import RecordStore


class FakeSourceFetcher:
    """Writes ``files`` into the target directory instead of cloning."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files = files if files is not None else {"Dockerfile": "FROM scratch\n"}
        self.calls: list[tuple[str, Path, str]] = []
        self.error: Exception | None = None

    async def fetch(self, repo_url: str, target_dir: Path, branch: str) -> None:
        self.calls.append((repo_url, target_dir, branch))
        if self.error is not None:
            raise self.error
        target_dir.mkdir(parents=True, exist_ok=True)
        for name, content in self.files.items():
            (target_dir / name).write_text(content)


class FakeImageBuilder:
    """Records builds; can fail or block until ``gate`` is set."""

    def __init__(self):
        self.builds: list[tuple[str, str]] = []
        self.recipes: list[str] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def build(self, source_dir: Path, image_tag: str, recipe_file: str) -> str:
        self.builds.append((source_dir.name, image_tag))
        self.recipes.append((source_dir / recipe_file).read_text())
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return f"Successfully tagged {image_tag}\n"


class FakePublishTarget:
    """In-memory cluster: create raises ResourceExistsError for names it has seen."""

    def __init__(self):
        self.resources: dict[tuple[str, str], WorkloadSpec] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}

    async def _apply(self, action: str, kind: str, spec: WorkloadSpec) -> None:
        method = f"{action}_{kind}"
        self.calls.append((method, spec.name))
        if method in self.failures:
            raise self.failures[method]
        key = (kind, spec.name)
        if action == "create" and key in self.resources:
            raise ResourceExistsError(f"{kind} {spec.name} already exists")
        self.resources[key] = spec

    async def create_process_group(self, spec):
        await self._apply("create", "process_group", spec)

    async def update_process_group(self, spec):
        await self._apply("update", "process_group", spec)

    async def create_endpoint(self, spec):
        await self._apply("create", "endpoint", spec)

    async def update_endpoint(self, spec):
        await self._apply("update", "endpoint", spec)

    async def create_route(self, spec):
        await self._apply("create", "route", spec)

    async def update_route(self, spec):
        await self._apply("update", "route", spec)


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'deployd.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    return RecordStore(create_session_maker(engine))


@pytest.fixture
async def project(store):
    return await store.create_project(
        name="demo",
        slug="demo",
        repo_url="https://github.com/acme/demo.git",
        repo_owner="acme",
        repo_name="demo",
    )


@pytest.fixture
def queue():
    return BuildQueue()


@pytest.fixture
def fetcher():
    return FakeSourceFetcher()


@pytest.fixture
def image_builder():
    return FakeImageBuilder()


@pytest.fixture
def target():
    return FakePublishTarget()


@pytest.fixture
def allocator(store):
    return HostnameAllocator(store, base_domain="localhost")


@pytest.fixture
def publisher(target):
    return WorkloadPublisher(target, namespace="apps")


@pytest.fixture
def pipeline(store, fetcher, image_builder, allocator, publisher, tmp_path):
    return BuildPipeline(
        store,
        fetcher,
        image_builder,
        build_root=tmp_path / "builds",
        allocator=allocator,
        publisher=publisher,
        locks=ProjectLocks(),
    )
