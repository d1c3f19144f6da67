import asyncio

import typer

from deployd.cli.commands import deployment, hostname, project, serve
from deployd.cli.context import console, open_store
from deployd.config import get_settings
from deployd.logging_config import setup_logging

app = typer.Typer(
    name="deployd",
    help="Self-hosted continuous deployment controller",
    add_completion=False,
)


@app.callback()
def callback():
    """
    deployd: push in, running workload out
    """
    settings = get_settings()
    setup_logging(settings.service_name, settings.log_format, settings.log_level)


@app.command("init-db")
def init_db():
    """Create the record store tables."""
    settings = get_settings()

    async def _init():
        async with open_store(settings):
            pass

    try:
        asyncio.run(_init())
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise typer.Exit(code=1) from None
    console.print("[bold green]✓ Database initialized[/bold green]")


app.command()(serve.serve)
app.add_typer(project.app, name="project", help="Manage projects")
app.add_typer(deployment.app, name="deployment", help="Inspect deployments")
app.add_typer(hostname.app, name="hostname", help="Inspect hostnames")


if __name__ == "__main__":
    app()
