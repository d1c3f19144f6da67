from pathlib import Path
from unittest.mock import MagicMock, patch

import docker
import pytest

from deployd.clients.docker_ops import DockerClientWrapper
from deployd.clients.image_builder import (
    DockerImageBuilder,
    ImageBuildError,
    UnavailableImageBuilder,
    image_tag_for,
)


@pytest.fixture
def docker_client():
    with patch("deployd.clients.docker_ops.docker.from_env") as mock_from_env:
        client = MagicMock()
        mock_from_env.return_value = client
        yield client


def test_image_tag_uses_short_sha():
    assert image_tag_for("deploy", 12, "1a2b3c4d5e6f") == "deploy-12:1a2b3c4"
    assert image_tag_for("deploy", 12, "") == "deploy-12:latest"


@pytest.mark.asyncio
async def test_build_returns_stream_output(docker_client):
    docker_client.images.build.return_value = (
        MagicMock(),
        [{"stream": "Step 1/2\n"}, {"aux": {"ID": "sha256:1"}}, {"stream": "Successfully built\n"}],
    )
    builder = DockerImageBuilder(DockerClientWrapper())

    output = await builder.build(Path("/tmp/builds/12"), "deploy-12:1a2b3c4", "Dockerfile")

    assert output == "Step 1/2\nSuccessfully built\n"
    docker_client.images.build.assert_called_once_with(
        path="/tmp/builds/12", tag="deploy-12:1a2b3c4", dockerfile="Dockerfile", rm=True
    )


@pytest.mark.asyncio
async def test_build_error_keeps_log(docker_client):
    docker_client.images.build.side_effect = docker.errors.BuildError(
        reason="returned a non-zero code: 1",
        build_log=[{"stream": "RUN npm run build\n"}, {"error": "npm ERR! missing script\n"}],
    )
    builder = DockerImageBuilder(DockerClientWrapper())

    with pytest.raises(ImageBuildError) as exc_info:
        await builder.build(Path("/src"), "deploy-1:abc", "Dockerfile")

    assert "non-zero code" in str(exc_info.value)
    assert "npm ERR! missing script" in exc_info.value.build_log


@pytest.mark.asyncio
async def test_daemon_error_is_a_build_error(docker_client):
    docker_client.images.build.side_effect = docker.errors.APIError("daemon gone")
    builder = DockerImageBuilder(DockerClientWrapper())

    with pytest.raises(ImageBuildError, match="Docker daemon error"):
        await builder.build(Path("/src"), "deploy-1:abc", "Dockerfile")


@pytest.mark.asyncio
async def test_explicit_docker_host():
    with patch("deployd.clients.docker_ops.docker.DockerClient") as mock_client_class:
        wrapper = DockerClientWrapper(base_url="tcp://builder:2375")

    mock_client_class.assert_called_once_with(base_url="tcp://builder:2375")
    await wrapper.close()


@pytest.mark.asyncio
async def test_unavailable_builder_always_fails():
    builder = UnavailableImageBuilder("connection refused")

    with pytest.raises(ImageBuildError, match="connection refused"):
        await builder.build(Path("/src"), "deploy-1:abc", "Dockerfile")
