import asyncio

from rich.table import Table
import typer

from deployd.cli.context import console, open_store
from deployd.config import get_settings

app = typer.Typer()


@app.command("list")
def list_hostnames(
    project_id: int | None = typer.Option(None, "--project-id", "-p", help="Only this project"),
    all_rows: bool = typer.Option(False, "--all", "-a", help="Include inactive hostnames"),
):
    """List allocated hostnames and the deployment each one serves."""
    settings = get_settings()

    async def _list():
        async with open_store(settings) as store:
            return await store.list_hostnames(project_id=project_id)

    rows = [h for h in asyncio.run(_list()) if all_rows or h.is_active]

    table = Table(title="Hostnames")
    table.add_column("Hostname", style="cyan")
    table.add_column("Project", justify="right")
    table.add_column("Deployment", justify="right")
    table.add_column("URL", style="green")
    if all_rows:
        table.add_column("Active")

    for h in rows:
        cells = [h.hostname, str(h.project_id), str(h.deployment_id), settings.public_url + h.hostname]
        if all_rows:
            cells.append("yes" if h.is_active else "no")
        table.add_row(*cells)

    console.print(table)
