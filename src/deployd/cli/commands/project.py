import asyncio
import json as json_lib

from rich.table import Table
import typer

from deployd.cli.context import console, open_store
from deployd.config import get_settings
from deployd.projects import ProjectService, parse_repo_url
from deployd.store import DuplicateRecordError, RecordNotFoundError

app = typer.Typer()


async def add_project_command(
    name: str,
    repo_url: str,
    repo_owner: str | None,
    repo_name: str | None,
    branch: str,
    owner_id: int | None,
) -> dict:
    if not (repo_owner and repo_name):
        parsed_owner, parsed_name = parse_repo_url(repo_url)
        repo_owner = repo_owner or parsed_owner
        repo_name = repo_name or parsed_name

    async with open_store(get_settings()) as store:
        project = await ProjectService(store).register(
            owner_id=owner_id,
            name=name,
            repo_url=repo_url,
            repo_owner=repo_owner,
            repo_name=repo_name,
            branch=branch,
        )
    return project.to_dict()


@app.command()
def add(
    name: str = typer.Option(..., "--name", "-n", help="Display name; the slug is derived from it"),
    repo_url: str = typer.Option(..., "--repo-url", "-r", help="Clone URL"),
    repo_owner: str | None = typer.Option(None, "--repo-owner", help="Defaults to the URL's owner"),
    repo_name: str | None = typer.Option(None, "--repo-name", help="Defaults to the URL's name"),
    branch: str = typer.Option("main", "--branch", "-b"),
    owner_id: int | None = typer.Option(None, "--owner-id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Register a repository (re-links it if it is already registered)."""
    try:
        project = asyncio.run(
            add_project_command(name, repo_url, repo_owner, repo_name, branch, owner_id)
        )
    except (ValueError, DuplicateRecordError) as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise typer.Exit(code=1) from None

    if json_output:
        typer.echo(json_lib.dumps(project, indent=2, default=str))
        return

    console.print("[bold green]✓ Project registered[/bold green]")
    console.print(f"ID: [cyan]{project['id']}[/cyan]")
    console.print(f"Slug: [magenta]{project['slug']}[/magenta]")
    console.print(f"Repository: {project['repo_owner']}/{project['repo_name']}")


@app.command("list")
def list_projects(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List registered projects."""

    async def _list():
        async with open_store(get_settings()) as store:
            return [p.to_dict() for p in await store.list_projects()]

    projects = asyncio.run(_list())

    if json_output:
        typer.echo(json_lib.dumps(projects, indent=2, default=str))
        return

    table = Table(title="Projects")
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Slug", style="magenta")
    table.add_column("Repository")
    table.add_column("Branch", style="green")

    for p in projects:
        table.add_row(str(p["id"]), p["slug"], f"{p['repo_owner']}/{p['repo_name']}", p["branch"])

    console.print(table)


@app.command("env-set")
def env_set(
    project_id: int = typer.Argument(..., help="Project ID"),
    assignments: list[str] = typer.Argument(..., help="KEY=VALUE pairs"),
):
    """Set environment variables passed to the project's workload."""
    pairs = []
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep:
            console.print(f"[bold red]Error:[/bold red] expected KEY=VALUE, got {assignment!r}")
            raise typer.Exit(code=1)
        pairs.append((key, value))

    async def _set():
        async with open_store(get_settings()) as store:
            service = ProjectService(store)
            for key, value in pairs:
                await service.set_env(project_id, key, value)

    try:
        asyncio.run(_set())
    except (ValueError, RecordNotFoundError) as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise typer.Exit(code=1) from None

    for key, _value in pairs:
        console.print(f"[green]✓[/green] {key}")
