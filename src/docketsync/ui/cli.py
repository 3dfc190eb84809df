from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import date
from typing import Any

from dotenv import load_dotenv
import typer

from docketsync.adapters.clients.credentials import EnvTokenProvider
from docketsync.adapters.clients.docketwise import DocketwiseClient
from docketsync.adapters.db.facade import DB
from docketsync.classification.status_classifier import classify
from docketsync.core.config import (
    SyncConfig,
    database_url_from_env,
    load_sync_config_from_env,
)
from docketsync.sync.orchestrator import SyncOrchestrator, SyncStatusView

# Load environment variables from .env
load_dotenv()

app = typer.Typer(help="docketsync: keep the local matter store in sync with Docketwise.")

sync_app = typer.Typer(help="Run and inspect Docketwise syncs.")
app.add_typer(sync_app, name="sync")

ACTOR_OPTION = typer.Option("default", "--actor", help="Actor whose matters are synced")


def _load_config() -> SyncConfig:
    try:
        return load_sync_config_from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1) from None


def _build(config: SyncConfig) -> tuple[SyncOrchestrator, DocketwiseClient]:
    db = DB(config.database_url)
    db.create_schema()
    client = DocketwiseClient.from_config(config)
    orchestrator = SyncOrchestrator(db, client, EnvTokenProvider(), config=config)
    return orchestrator, client


def _echo_status(view: SyncStatusView) -> None:
    typer.echo(f"Status: {view.status}")
    typer.echo(f"Connected: {'yes' if view.is_connected else 'no'}")
    if view.phase_name:
        progress = view.progress
        typer.echo(
            f"Phase: {view.phase_name} "
            f"({progress.processed}/{progress.total}, {progress.percentage}%)"
        )
    if view.failure_reason:
        typer.echo(f"Failure: {view.failure_reason}")
    if view.last_sync:
        typer.echo(f"Last sync: {view.last_sync.isoformat(sep=' ', timespec='seconds')}")
    else:
        typer.echo("Last sync: never")


@app.command("init-db")
def init_db() -> None:
    """Create the local tables if they do not exist."""
    url = database_url_from_env()
    DB(url).create_schema()
    typer.echo(f"Schema ready at {url}")


@sync_app.command("start")
def sync_start(
    actor: str = ACTOR_OPTION,
    poll_seconds: float = typer.Option(
        5.0, min=0.1, help="Seconds between status polls"
    ),
) -> None:
    """Start a background sync and poll its status until it finishes."""
    config = _load_config()
    asyncio.run(_start_and_poll(config, actor, poll_seconds))


async def _start_and_poll(config: SyncConfig, actor: str, poll_seconds: float) -> None:
    orchestrator, client = _build(config)
    try:
        accepted = orchestrator.start_sync(actor)
        typer.echo(accepted.message)
        while not await orchestrator.supervisor.wait_idle(timeout=poll_seconds):
            view = orchestrator.get_sync_status(actor)
            if view.phase_name:
                typer.echo(f"... {view.phase_name}")
        _echo_status(orchestrator.get_sync_status(actor))
    finally:
        await client.aclose()


@sync_app.command("run")
def sync_run(actor: str = ACTOR_OPTION) -> None:
    """Run a sync in the foreground and print each phase result."""
    config = _load_config()
    success = asyncio.run(_run(config, actor))
    if not success:
        raise typer.Exit(1)


async def _run(config: SyncConfig, actor: str) -> bool:
    orchestrator, client = _build(config)
    try:
        result = await orchestrator.run_sync(actor)
    finally:
        await client.aclose()

    for phase in result.phases:
        mark = "ok" if phase.success else "FAILED"
        typer.echo(f"[{mark}] {phase.phase}: {phase.message or phase.error or ''}")
    typer.echo(f"Finished in {result.duration_seconds:.1f}s")
    return result.success


@sync_app.command("status")
def sync_status(actor: str = ACTOR_OPTION) -> None:
    """Show the persisted sync state for an actor."""
    config = _load_config()
    orchestrator, client = _build(config)
    _echo_status(orchestrator.get_sync_status(actor))
    asyncio.run(client.aclose())


@app.command("classify")
def classify_cmd(label: str) -> None:
    """Print the business classification of a status label."""
    for key, value in asdict(classify(label)).items():
        typer.echo(f"{key}: {value}")


def _parse_edit(pairs: list[str]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected FIELD=VALUE, got {pair!r}")
        key = key.strip()
        if key == "deadline":
            changes[key] = date.fromisoformat(value) if value else None
        elif key == "archived":
            changes[key] = value.strip().lower() in {"1", "true", "yes"}
        else:
            changes[key] = value or None
    return changes


@app.command("edit")
def edit(
    matter_id: int,
    fields: list[str] = typer.Option(  # noqa: B008
        ..., "--set", help="FIELD=VALUE to change; repeatable"
    ),
    by: str = typer.Option(..., "--by", help="Who made the edit"),
) -> None:
    """Edit a matter locally; sync will leave it alone until the edit is cleared."""
    db = DB(database_url_from_env())
    try:
        matter = db.apply_manual_edit(matter_id, _parse_edit(fields), edited_by=by)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None
    typer.echo(f"Matter {matter.matter_id} edited by {matter.edited_by}")


@app.command("clear-edit")
def clear_edit(matter_id: int) -> None:
    """Hand a manually edited matter back to sync."""
    db = DB(database_url_from_env())
    if not db.clear_manual_edit(matter_id):
        typer.echo(f"Matter {matter_id} not found", err=True)
        raise typer.Exit(1)
    typer.echo(f"Matter {matter_id} will be updated by the next sync")


def main() -> None:
    app()
