"""
CLI interface for ccgh-stats.

Provides setup, status and the hook-driven incremental sync.
"""

import sys
from typing import Optional

import typer
import yaml
from rich.console import Console

from ccgh_stats.api.client import ApiError, StatsApiClient
from ccgh_stats.config.loader import SyncSettings, load_settings
from ccgh_stats.core.oplog import configure_sync_logger
from ccgh_stats.core.sync import SyncOrchestrator
from ccgh_stats.core.usage import format_tokens
from ccgh_stats.storage.store import SyncStateStore

app = typer.Typer(add_completion=False)
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1


class AppContext:
    """Objects built once per invocation and shared by the commands."""

    def __init__(self, settings: SyncSettings):
        self.settings = settings
        self.store = SyncStateStore(settings)
        self.logger = configure_sync_logger(settings.log_file, settings.log_max_bytes)

    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            settings=self.settings,
            store=self.store,
            client=StatsApiClient(self.settings.api_url),
            logger=self.logger
        )


def _build_context(settings_path: Optional[str]) -> AppContext:
    try:
        settings = load_settings(settings_path)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid settings:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    context = AppContext(settings)
    context.store.migrate_legacy_state()
    return context


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    sync_mode: bool = typer.Option(
        False,
        "--sync",
        help="Incremental sync (used by the assistant hook)"
    ),
    settings_path: Optional[str] = typer.Option(
        None,
        "--settings",
        help="Path to a YAML settings file"
    )
):
    """ccgh-stats - Track your Claude Code usage on GitHub."""
    ctx.obj = _build_context(settings_path)
    if ctx.invoked_subcommand is not None:
        return
    if sync_mode:
        _run_sync(ctx.obj)
        return
    _print_usage()


@app.command()
def setup(ctx: typer.Context):
    """Register and do the initial full sync."""
    context: AppContext = ctx.obj
    console.print("[bold]ccgh-stats Setup[/bold]\n")

    if not context.store.is_registered():
        console.print(f"Registering with {context.settings.api_url}...")
        console.print("Parsing all sessions for initial sync...")

    try:
        result = context.orchestrator().full_sync()
    except (ApiError, OSError) as e:
        context.logger.error(f"Setup failed - {e}")
        console.print(f"[red]Setup failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if result.already_registered:
        console.print("Already registered!")
        console.print(f"Public ID: {result.public_id}")
        console.print(f"Widget URL: {result.widget_url}")
        console.print("\nTo re-register, delete ~/.claude-stats/ and run setup again.")
        return

    console.print(
        f"Uploaded {result.record_count} records "
        f"({format_tokens(result.total_tokens)} tokens)"
    )
    console.print("\n[green]✓[/] Setup complete!\n")
    console.print(f"Public ID: {result.public_id}")
    console.print(f"Widget URL: {result.widget_url}")
    console.print("\nAdd this to your GitHub README:")
    console.print(f"  ![Claude Stats]({result.widget_url})", markup=False)


@app.command()
def status(ctx: typer.Context):
    """Show registration status."""
    context: AppContext = ctx.obj
    console.print("[bold]ccgh-stats Status[/bold]\n")

    config = context.store.read_config()
    if config is not None and config.public_id:
        console.print("Registration: [green]Registered[/]")
        console.print(f"Public ID: {config.public_id}")
        console.print(f"API URL: {context.settings.api_url}")
        console.print(f"Widget: {context.store.widget_url()}")
        console.print(f"Last sync: {context.store.last_sync_date() or 'Never'}")
    else:
        console.print("Registration: [yellow]Not registered[/]")
        console.print('Run "ccgh-stats setup" to register.')


@app.command()
def sync(ctx: typer.Context):
    """Incremental sync of modified sessions (silent)."""
    _run_sync(ctx.obj)


def _run_sync(context: AppContext) -> None:
    try:
        context.orchestrator().incremental_sync()
    except Exception as e:
        # Hook runs unattended; the sync log is the only place errors surface
        context.logger.error(f"Uncaught error - {e}")
        sys.exit(EXIT_CODE_FAIL)


def _print_usage() -> None:
    console.print("ccgh-stats - Track your Claude Code usage on GitHub\n")
    console.print("Usage:")
    console.print("  ccgh-stats setup    Register and do initial sync")
    console.print("  ccgh-stats status   Show registration status")
    console.print("  ccgh-stats --sync   Incremental sync (used by hook)")


if __name__ == "__main__":
    app()
