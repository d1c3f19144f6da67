import pytest

from deployd.clients.image_builder import ImageBuildError
from deployd.clients.source import SourceFetchError
from deployd.models import DeploymentStatus
from deployd.pipeline import BuildFailedError, BuildPipeline, failure_log
from deployd.publisher import PublishError


async def _building_deployment(store, project, sha="1a2b3c4d5e6f"):
    deployment = await store.create_deployment(project.id, commit_sha=sha, branch="develop")
    await store.transition_deployment(deployment.id, DeploymentStatus.BUILDING)
    return deployment


def test_failure_log_includes_build_output():
    error = ImageBuildError("Image build failed: exit 1", build_log="npm ERR!\n")

    assert failure_log(error) == "Image build failed: exit 1\n\nnpm ERR!\n"
    assert failure_log(RuntimeError("boom")) == "boom"


@pytest.mark.asyncio
async def test_successful_run(pipeline, store, project, fetcher, image_builder, target, tmp_path):
    deployment = await _building_deployment(store, project)

    result = await pipeline.run(deployment.id)

    assert result.status == "deployed"
    assert result.hostname == "demo.localhost"
    assert result.image_tag == f"deploy-{deployment.id}:1a2b3c4"
    assert result.namespace == "apps"
    assert result.workload_name == f"project-{project.id}"
    assert fetcher.calls == [
        ("https://github.com/acme/demo.git", tmp_path / "builds" / str(deployment.id), "develop")
    ]
    build = await store.get_build(deployment.id)
    assert build.status == "success"
    assert "Successfully tagged" in build.logs
    assert build.completed_at is not None
    assert target.resources[("process_group", f"project-{project.id}")].image == result.image_tag


@pytest.mark.asyncio
async def test_build_dir_removed_after_run(pipeline, store, project, tmp_path):
    deployment = await _building_deployment(store, project)

    await pipeline.run(deployment.id)

    assert not (tmp_path / "builds" / str(deployment.id)).exists()


@pytest.mark.asyncio
async def test_build_dir_kept_when_configured(
    store, project, fetcher, image_builder, allocator, publisher, tmp_path
):
    pipeline = BuildPipeline(
        store,
        fetcher,
        image_builder,
        build_root=tmp_path / "builds",
        allocator=allocator,
        publisher=publisher,
        keep_build_dirs=True,
    )
    deployment = await _building_deployment(store, project)

    await pipeline.run(deployment.id)

    assert (tmp_path / "builds" / str(deployment.id) / "Dockerfile").is_file()


@pytest.mark.asyncio
async def test_fetch_failure_fails_build_and_deployment(pipeline, store, project, fetcher):
    fetcher.error = SourceFetchError("failed to clone repository: not found")
    deployment = await _building_deployment(store, project)

    with pytest.raises(BuildFailedError):
        await pipeline.run(deployment.id)

    build = await store.get_build(deployment.id)
    assert build.status == "failed"
    assert build.logs == "failed to clone repository: not found"
    assert (await store.get_deployment(deployment.id)).status == "failed"


@pytest.mark.asyncio
async def test_image_build_failure_keeps_output(
    pipeline, store, project, image_builder, target
):
    image_builder.error = ImageBuildError("Image build failed", build_log="Step 3/5 failed\n")
    deployment = await _building_deployment(store, project)

    with pytest.raises(BuildFailedError):
        await pipeline.run(deployment.id)

    build = await store.get_build(deployment.id)
    assert "Step 3/5 failed" in build.logs
    assert target.calls == []
    assert await store.list_hostnames(project.id) == []


@pytest.mark.asyncio
async def test_generated_recipe_is_built(pipeline, store, project, fetcher, image_builder):
    fetcher.files = {"requirements.txt": "flask\n", "app.py": ""}
    deployment = await _building_deployment(store, project)

    await pipeline.run(deployment.id)

    assert image_builder.recipes[0].startswith("FROM python:3.11-slim")


@pytest.mark.asyncio
async def test_publish_failure_fails_deployment(pipeline, store, project, target):
    target.failures["create_route"] = RuntimeError("admission webhook denied")
    deployment = await _building_deployment(store, project)

    with pytest.raises(PublishError):
        await pipeline.run(deployment.id)

    reloaded = await store.get_deployment(deployment.id)
    assert reloaded.status == "failed"
    assert reloaded.image_tag is not None
    # Build itself succeeded
    assert (await store.get_build(deployment.id)).status == "success"
    # Earlier resources stay in place
    assert ("process_group", f"project-{project.id}") in target.resources


@pytest.mark.asyncio
async def test_without_publisher_stops_at_deploying(store, project, fetcher, image_builder, tmp_path):
    pipeline = BuildPipeline(store, fetcher, image_builder, build_root=tmp_path / "builds")
    deployment = await _building_deployment(store, project)

    result = await pipeline.run(deployment.id)

    assert not pipeline.publishing_enabled
    assert result.status == "deploying"
    assert result.hostname is None


@pytest.mark.asyncio
async def test_project_env_reaches_workload(
    store, project, fetcher, image_builder, allocator, publisher, target, tmp_path
):
    pipeline = BuildPipeline(
        store,
        fetcher,
        image_builder,
        build_root=tmp_path / "builds",
        allocator=allocator,
        publisher=publisher,
        default_env={"LOG_LEVEL": "info", "REGION": "eu"},
    )
    await store.set_env_var(project.id, "REGION", "us")
    await store.set_env_var(project.id, "API_KEY", "k")
    deployment = await _building_deployment(store, project)

    await pipeline.run(deployment.id)

    spec = target.resources[("process_group", f"project-{project.id}")]
    assert spec.env == {"PORT": "8080", "LOG_LEVEL": "info", "REGION": "us", "API_KEY": "k"}
