import pytest

from deployd.hostnames import (
    AllocationExhaustedError,
    HostnameAllocator,
    hostname_label,
    project_label,
)
from deployd.models import Project
from deployd.store import RecordNotFoundError


async def _other_project(store, slug="other"):
    project = await store.create_project(
        name=slug,
        slug=slug,
        repo_url=f"https://github.com/acme/{slug}.git",
        repo_owner="acme",
        repo_name=slug,
    )
    deployment = await store.create_deployment(project.id, commit_sha="f" * 40)
    return project, deployment


@pytest.mark.parametrize(
    "value,expected",
    [
        ("demo", "demo"),
        ("My App", "my-app"),
        ("my_app.v2", "my-app-v2"),
        ("Hello, World!", "hello-world"),
        ("--edge--", "edge"),
        ("ünïcode", "ncode"),
        ("a  b", "a-b"),
    ],
)
def test_hostname_label(value, expected):
    assert hostname_label(value) == expected


def test_project_label_falls_back():
    assert project_label(Project(slug="Demo", name="x", repo_name="y")) == "demo"
    assert project_label(Project(slug="!!!", name="Name", repo_name="y")) == "name"
    assert project_label(Project(slug="", name="", repo_name="repo")) == "repo"
    assert project_label(Project(slug="", name="", repo_name="")) == "deploy"


def test_candidates(store):
    allocator = HostnameAllocator(store, base_domain="example.com")

    assert allocator.candidate("app", 0) == "app.example.com"
    assert allocator.candidate("app", 3) == "app-3.example.com"


def test_full_url(store):
    allocator = HostnameAllocator(store, base_domain="localhost", public_url="https://")

    assert allocator.full_url("demo.localhost") == "https://demo.localhost"
    assert allocator.full_url(None) == ""


@pytest.mark.asyncio
async def test_first_allocation_uses_slug(store, project, allocator):
    deployment = await store.create_deployment(project.id, commit_sha="a" * 40)

    hostname = await allocator.allocate(project.id, deployment.id)

    assert hostname == "demo.localhost"
    assert (await store.get_deployment(deployment.id)).hostname == "demo.localhost"
    active = await store.get_active_hostname(project.id)
    assert active.hostname == "demo.localhost"
    assert active.deployment_id == deployment.id


@pytest.mark.asyncio
async def test_reallocation_is_stable(store, project, allocator):
    deployments = [
        await store.create_deployment(project.id, commit_sha=str(i) * 40) for i in range(3)
    ]

    hostnames = {await allocator.allocate(project.id, d.id) for d in deployments}

    assert hostnames == {"demo.localhost"}
    rows = await store.list_hostnames(project.id)
    assert len(rows) == 1
    assert rows[0].is_active
    assert rows[0].deployment_id == deployments[-1].id


@pytest.mark.asyncio
async def test_collision_probes_numeric_suffix(store, project, allocator):
    other, other_deployment = await _other_project(store)
    await store.create_hostname("demo.localhost", other.id, other_deployment.id)
    await store.create_hostname("demo-1.localhost", other.id, other_deployment.id, is_active=False)
    deployment = await store.create_deployment(project.id, commit_sha="a" * 40)

    assert await allocator.allocate(project.id, deployment.id) == "demo-2.localhost"


@pytest.mark.asyncio
async def test_colliding_slugs_get_distinct_hostnames(store, allocator):
    first, first_deployment = await _other_project(store, slug="shop")
    second, second_deployment = await _other_project(store, slug="Shop")

    a = await allocator.allocate(first.id, first_deployment.id)
    b = await allocator.allocate(second.id, second_deployment.id)

    assert a == "shop.localhost"
    assert b == "shop-1.localhost"


@pytest.mark.asyncio
async def test_probing_is_capped(store, project):
    other, other_deployment = await _other_project(store)
    for name in ("demo.localhost", "demo-1.localhost", "demo-2.localhost"):
        await store.create_hostname(name, other.id, other_deployment.id)
    deployment = await store.create_deployment(project.id, commit_sha="a" * 40)
    allocator = HostnameAllocator(store, base_domain="localhost", max_probes=2)

    with pytest.raises(AllocationExhaustedError):
        await allocator.allocate(project.id, deployment.id)

    assert await store.list_hostnames(project.id) == []
    assert (await store.get_deployment(deployment.id)).hostname is None


@pytest.mark.asyncio
async def test_inactive_row_of_same_project_is_reactivated(store, project, allocator):
    old = await store.create_deployment(project.id, commit_sha="a" * 40)
    await store.create_hostname("demo.localhost", project.id, old.id, is_active=False)
    new = await store.create_deployment(project.id, commit_sha="b" * 40)

    assert await allocator.allocate(project.id, new.id) == "demo.localhost"

    rows = await store.list_hostnames(project.id)
    assert len(rows) == 1
    assert rows[0].is_active
    assert rows[0].deployment_id == new.id


@pytest.mark.asyncio
async def test_extra_active_rows_are_deactivated(store, project, allocator):
    deployment = await store.create_deployment(project.id, commit_sha="a" * 40)
    await store.create_hostname("demo.localhost", project.id, deployment.id)
    await store.create_hostname("demo-legacy.localhost", project.id, deployment.id)

    assert await allocator.allocate(project.id, deployment.id) == "demo.localhost"

    active = [row.hostname for row in await store.list_hostnames(project.id) if row.is_active]
    assert active == ["demo.localhost"]


@pytest.mark.asyncio
async def test_unknown_deployment_leaves_no_row(store, project, allocator):
    with pytest.raises(RecordNotFoundError):
        await allocator.allocate(project.id, 12345)

    assert await store.list_hostnames(project.id) == []
