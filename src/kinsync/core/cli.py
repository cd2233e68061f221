"""Command line interface for kinsync."""

import sys
import json
import logging
from typing import Optional

import click

from .config import setup_logging, load_environment, load_settings
from ..engine.sync import SyncEngine, create_sync_engine
from ..exceptions import ConfigurationError, KinsyncException
from ..models.sync import Direction, SyncRun
from ..services.cursors import InMemoryCursorStore
from ..services.secrets import SecretManagerService


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
def cli(log_level: str, env_file: Optional[str]) -> None:
    """Planning Center People <-> Fibery sync tool."""
    setup_logging(log_level)
    load_environment(env_file)


def _build_engine(memory_cursors: bool = False, use_secrets: bool = False,
                  reverse: Optional[bool] = None) -> SyncEngine:
    """Build an engine from the environment, optionally overriding the reverse direction."""
    credentials = None
    if use_secrets:
        credentials = SecretManagerService().get_api_credentials()

    settings = load_settings(credentials)
    if reverse is not None:
        settings = settings.model_copy(
            update={"reverse_sync": Direction.ENABLED if reverse else Direction.DISABLED}
        )

    cursors = InMemoryCursorStore() if memory_cursors else None
    return create_sync_engine(settings, cursors=cursors)


def _display_run(run: SyncRun) -> None:
    summary = run.get_summary()
    click.echo(f"Run {run.id}: {run.status.value} (stage: {run.stage.value})")
    for direction in ("pco_to_fibery", "fibery_to_pco"):
        counts = summary[direction]
        click.echo(
            f"  {direction:<14} pulled {counts['pulled_households']} households / {counts['pulled_people']} people, "
            f"created {counts['created']}, updated {counts['updated']}, skipped {counts['skipped']}, "
            f"deferred {counts['deferred']}, invalid {counts['invalid']}"
        )
    for key, token in run.cursors_after.items():
        click.echo(f"  cursor {key}: {run.cursors_before.get(key)} -> {token}")
    if run.warnings:
        click.echo(f"  {len(run.warnings)} warnings")
    if run.execution_time_seconds is not None:
        click.echo(f"  took {run.execution_time_seconds:.1f}s")


@cli.command()
@click.option('--memory-cursors', is_flag=True,
              help='Keep cursors in memory instead of Firestore (full resync, nothing persisted)')
@click.option('--use-secrets', is_flag=True, help='Read credentials from Google Secret Manager')
@click.option('--reverse/--no-reverse', default=None,
              help='Override REVERSE_SYNC for this run')
@click.option('--output', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
def run(memory_cursors: bool, use_secrets: bool, reverse: Optional[bool], output: str) -> None:
    """Run one sync pass."""
    try:
        engine = _build_engine(memory_cursors=memory_cursors, use_secrets=use_secrets, reverse=reverse)
        result = engine.run(triggered_by="cli")

        if output == 'json':
            click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        else:
            _display_run(result)

        if not result.succeeded:
            click.echo(f"❌ Sync failed during {result.stage.value}: {result.error_type}: {result.error_message}",
                       err=True)
            sys.exit(1)
        click.echo("✅ Sync completed")

    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)
    except KinsyncException as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--use-secrets', is_flag=True, help='Read credentials from Google Secret Manager')
def test_connection(use_secrets: bool) -> None:
    """Test connections to Planning Center and Fibery."""
    try:
        engine = _build_engine(memory_cursors=True, use_secrets=use_secrets)
        failed = False
        for connector in (engine.pco, engine.fibery):
            if connector.test_connection():
                click.echo(f"✅ Successfully connected to {connector.name}")
            else:
                click.echo(f"❌ Could not connect to {connector.name}", err=True)
                failed = True
        if failed:
            sys.exit(1)

    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)


@cli.command()
def show_cursors() -> None:
    """Show the stored cursors for both pull directions."""
    try:
        engine = _build_engine()
        for key, token in engine.cursors.get_all().items():
            click.echo(f"{key}: {token or '(not set, next run is a full resync)'}")

    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)
    except KinsyncException as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
