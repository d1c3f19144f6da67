import json
from unittest.mock import AsyncMock, patch

import docker
import pytest
from typer.testing import CliRunner

from deployd.cli.main import app
from deployd.clients.source import SourceFetchError
from deployd.config import get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("BUILD_ROOT", str(tmp_path / "builds"))
    monkeypatch.setenv("PUBLISH_ENABLED", "false")
    monkeypatch.setenv("WEBHOOK_SECRET", "")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _add_demo(*extra):
    return runner.invoke(
        app,
        [
            "project",
            "add",
            "--name",
            "Demo App",
            "--repo-url",
            "https://github.com/acme/demo.git",
            *extra,
        ],
    )


def test_init_db():
    result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 0
    assert "Database initialized" in result.stdout


def test_project_add_derives_repository_from_url():
    result = _add_demo("--json")

    assert result.exit_code == 0
    project = json.loads(result.stdout[result.stdout.index("{") :])
    assert project["slug"] == "Demo-App"
    assert project["repo_owner"] == "acme"
    assert project["repo_name"] == "demo"


def test_project_add_twice_relinks():
    _add_demo("--owner-id", "1")
    result = _add_demo("--owner-id", "2")

    assert result.exit_code == 0
    listed = runner.invoke(app, ["project", "list", "--json"])
    projects = json.loads(listed.stdout[listed.stdout.index("[") :])
    assert len(projects) == 1
    assert projects[0]["owner_id"] == 2


def test_project_add_bad_url():
    result = runner.invoke(
        app, ["project", "add", "--name", "x", "--repo-url", "https://github.com/"]
    )

    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_project_list_table():
    _add_demo()

    result = runner.invoke(app, ["project", "list"])

    assert result.exit_code == 0
    assert "Demo-App" in result.stdout
    assert "acme/demo" in result.stdout


def test_env_set():
    _add_demo()

    result = runner.invoke(app, ["project", "env-set", "1", "API_KEY=abc", "MODE=prod"])

    assert result.exit_code == 0
    assert "API_KEY" in result.stdout


def test_env_set_requires_assignment():
    _add_demo()

    result = runner.invoke(app, ["project", "env-set", "1", "API_KEY"])

    assert result.exit_code == 1


def test_env_set_unknown_project():
    result = runner.invoke(app, ["project", "env-set", "42", "A=1"])

    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_empty_listings():
    assert runner.invoke(app, ["deployment", "list"]).exit_code == 0
    assert runner.invoke(app, ["hostname", "list", "--all"]).exit_code == 0


def test_serve_once_processes_payload(tmp_path):
    _add_demo()
    payload = tmp_path / "push.json"
    payload.write_text(
        json.dumps(
            {
                "ref": "refs/heads/main",
                "repository": {"name": "demo", "owner": {"login": "acme"}},
                "head_commit": {"id": "1a2b3c4d5e6f", "message": "hello"},
            }
        )
    )
    fetcher = AsyncMock()
    fetcher.fetch.side_effect = SourceFetchError("failed to clone repository: offline")

    with (
        patch(
            "deployd.controller.DockerClientWrapper",
            side_effect=docker.errors.DockerException("no daemon"),
        ),
        patch("deployd.controller.GitSourceFetcher", return_value=fetcher),
    ):
        result = runner.invoke(app, ["serve", "--payload", str(payload), "--once"])

    assert result.exit_code == 0
    assert "Queued deployment" in result.stdout
    assert "failed" in result.stdout

    listed = runner.invoke(app, ["deployment", "list"])
    assert "failed" in listed.stdout
    assert "1a2b3c4" in listed.stdout


def test_serve_rejects_unknown_repository(tmp_path):
    payload = tmp_path / "push.json"
    payload.write_text(
        json.dumps(
            {
                "repository": {"name": "ghost", "owner": {"login": "acme"}},
                "head_commit": {"id": "abc"},
            }
        )
    )

    with patch(
        "deployd.controller.DockerClientWrapper",
        side_effect=docker.errors.DockerException("no daemon"),
    ):
        result = runner.invoke(app, ["serve", "--payload", str(payload), "--once"])

    assert result.exit_code == 0
    assert "Rejected push.json" in result.stdout
