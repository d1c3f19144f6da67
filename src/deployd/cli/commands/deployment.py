import asyncio
import json as json_lib

from rich.table import Table
import typer

from deployd.cli.context import console, open_store, status_style
from deployd.config import get_settings

app = typer.Typer()


@app.command("list")
def list_deployments(
    project_id: int | None = typer.Option(None, "--project-id", "-p", help="Only this project"),
    limit: int = typer.Option(20, "--limit", "-l"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List deployments, newest first."""

    async def _list():
        async with open_store(get_settings()) as store:
            return await store.list_deployments(project_id=project_id, limit=limit)

    deployments = asyncio.run(_list())

    if json_output:
        typer.echo(json_lib.dumps([d.to_dict() for d in deployments], indent=2, default=str))
        return

    table = Table(title="Deployments")
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Project", style="magenta")
    table.add_column("Status")
    table.add_column("Commit")
    table.add_column("Branch")
    table.add_column("Hostname")

    for d in deployments:
        style = status_style(d.status)
        table.add_row(
            str(d.id),
            d.project.slug,
            f"[{style}]{d.status}[/{style}]",
            d.short_sha,
            d.branch,
            d.hostname or "-",
        )

    console.print(table)
