"""Shared helpers for CLI commands."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rich.console import Console

from deployd.config import Settings
from deployd.database import create_engine, create_session_maker, init_models
from deployd.store import RecordStore

console = Console()


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[RecordStore]:
    """Record store for a one-off command; the engine is disposed on exit."""
    engine = create_engine(settings.database_url)
    try:
        await init_models(engine)
        yield RecordStore(create_session_maker(engine))
    finally:
        await engine.dispose()


def status_style(status: str) -> str:
    return {
        "deployed": "green",
        "failed": "red",
        "pending": "dim",
    }.get(status, "yellow")
