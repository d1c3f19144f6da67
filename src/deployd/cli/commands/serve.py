import asyncio
from pathlib import Path

import typer

from deployd.cli.context import console, status_style
from deployd.config import Settings, get_settings
from deployd.controller import Controller
from deployd.ingestion import IngestionError, sign

LOCAL_SIGNATURE = "local"


async def serve_command(
    settings: Settings, payloads: list[Path], event_type: str, once: bool
) -> list[int]:
    """Run the controller, feeding it the given push payload files.

    Returns:
        Ids of the deployments created from the payloads.
    """
    controller = await Controller.create(settings)
    controller.start()
    created = []
    try:
        for path in payloads:
            body = path.read_bytes()
            # Files on local disk are trusted; sign them so they pass verification
            signature = (
                sign(settings.webhook_secret, body) if settings.webhook_secret else LOCAL_SIGNATURE
            )
            try:
                deployment = await controller.ingestion.handle(event_type, body, signature)
            except IngestionError as e:
                console.print(f"[bold red]Rejected {path.name}:[/bold red] {str(e)}")
                continue
            if deployment is None:
                console.print(f"[dim]Ignored {path.name} ({event_type})[/dim]")
                continue
            created.append(deployment.id)
            console.print(f"Queued deployment [cyan]#{deployment.id}[/cyan] from {path.name}")

        if once:
            await controller.wait_until_idle()
        else:
            console.print("[bold green]deployd running[/bold green] (Ctrl+C to stop)")
            await asyncio.Event().wait()

        for deployment_id in created:
            deployment = await controller.store.get_deployment(deployment_id)
            style = status_style(deployment.status)
            url = controller.allocator.full_url(deployment.hostname)
            console.print(
                f"#{deployment.id} [{style}]{deployment.status}[/{style}] {url}".rstrip()
            )
    finally:
        await controller.stop()
    return created


def serve(
    payloads: list[Path] | None = typer.Option(
        None,
        "--payload",
        "-p",
        exists=True,
        dir_okay=False,
        help="Push payload JSON file to ingest on startup (repeatable)",
    ),
    event_type: str = typer.Option("push", "--event", "-e", help="Event type of the payloads"),
    once: bool = typer.Option(False, "--once", help="Stop when the queue is drained"),
):
    """Start the build workers and process deployments."""
    try:
        asyncio.run(serve_command(get_settings(), payloads or [], event_type, once))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
