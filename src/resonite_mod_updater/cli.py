"""
Resonite Mod Updater CLI - Command-line interface.

Update mods and loader libraries from the terminal.
"""

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from resonite_mod_updater.core.config import UpdaterConfig, load_config
from resonite_mod_updater.core.exceptions import (
    ConfigurationError,
    NoModulesFoundError,
    UpdaterError,
    format_exception,
)
from resonite_mod_updater.core.models import SyncOutcome, SyncStatus
from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.retry import RetryPolicy
from resonite_mod_updater.orchestrator.core import RunResult, UpdateOrchestrator

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="resonite-mod-updater",
    help="Resonite Mod Updater - keep ResoniteModLoader mods up to date",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

SYMBOL_UPDATE = "+"
SYMBOL_NO_CHANGE = "-"
SYMBOL_ISSUE = "/"

EXIT_INTERRUPTED = 130


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """
    Turn the first Ctrl+C into a cancel request for the running pass.

    The run stops before the next module, and rate-limit waits end early.
    A second Ctrl+C interrupts immediately.
    """
    cancel = threading.Event()

    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        console.print("\n[yellow]Cancelling... press Ctrl+C again to abort now[/yellow]")
        cancel.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def _status_cell(outcome: SyncOutcome) -> tuple[str, str]:
    """Return (symbol, styled status text) for an outcome."""
    match outcome.status:
        case SyncStatus.UPDATED:
            text = "Update Available" if outcome.dry_run else "Updated"
            return SYMBOL_UPDATE, f"[green]{text}[/green]"
        case SyncStatus.UP_TO_DATE:
            return SYMBOL_NO_CHANGE, "[dim]Up To Date[/dim]"
        case SyncStatus.IGNORED:
            return SYMBOL_NO_CHANGE, "[dim]Ignored[/dim]"
        case SyncStatus.NO_LINK_FOUND:
            return SYMBOL_ISSUE, "[red]No Link variable found[/red]"
        case SyncStatus.INVALID_LINK:
            return SYMBOL_ISSUE, "[red]Invalid Link variable, no releases found[/red]"
        case _:
            return SYMBOL_ISSUE, "[red]Something went Wrong[/red]"


def print_outcome(outcome: SyncOutcome) -> None:
    """Print one status line as soon as a module is processed."""
    symbol, status = _status_cell(outcome)
    color = "red" if outcome.is_issue() else "orange1"
    line = f" [{color}]{symbol}[/{color}] {outcome.filename} {status}"
    if outcome.source_url:
        line += f" [link={outcome.source_url}]{outcome.source_url}[/link]"
    console.print(line, highlight=False)


def print_error_summary(result: RunResult) -> None:
    """Print the consolidated error report at the end of a run."""
    if result.errors:
        table = Table(title=f"Errors ({len(result.errors)})")
        table.add_column("Module", style="cyan")
        table.add_column("Error", style="red")
        table.add_column("URL", style="dim")

        for outcome in result.errors:
            table.add_row(
                outcome.filename,
                outcome.error_message or outcome.error_type or "unknown",
                outcome.attempted_url or "-",
            )
        console.print()
        console.print(table)

    if result.fatal_error is not None:
        console.print(f"\n[red]Run stopped: {format_exception(result.fatal_error)}[/red]")
    elif result.cancelled:
        console.print("\n[yellow]Run cancelled[/yellow]")


def _print_header(title: str, config: UpdaterConfig, mods_folder: Path) -> None:
    lines = [f"[bold yellow]{title}[/bold yellow]", f"Mods folder: {mods_folder}"]
    if config.dry_run:
        lines.append("DryMode: [dim]True[/dim]")
    if config.has_token:
        lines.append(f"Token: [dim]{config.masked_token()}[/dim]")
    console.print(Panel.fit("\n".join(lines)))


def _on_retry(attempt: int, delay: float) -> None:
    console.print(
        f"[yellow]Attempt {attempt}: Access to the resource is forbidden. "
        f"Retrying in {delay:.0f}s...[/yellow]"
    )


def _build_client(config: UpdaterConfig, cancel_event: threading.Event) -> GitHubClient:
    retry_policy = RetryPolicy(
        max_retries=config.max_retries,
        retry_delay_seconds=config.retry_delay_seconds,
        on_retry=_on_retry,
        cancel_event=cancel_event,
    )
    return GitHubClient(config, retry_policy=retry_policy)


def _load(
    mods_folder: Optional[Path],
    token: Optional[str],
    dry: bool,
    **extra,
) -> tuple[UpdaterConfig, Path]:
    try:
        config = load_config(
            mods_folder=mods_folder,
            token=token,
            dry_run=dry or None,
            **extra,
        )
        return config, config.require_mods_folder()
    except ConfigurationError as e:
        console.print(f"[red]{format_exception(e)}[/red]")
        raise typer.Exit(1)


def _update_libraries_after_mods(
    orchestrator: UpdateOrchestrator,
    folder: Path,
    config: UpdaterConfig,
    cancel: threading.Event,
) -> RunResult | None:
    """Run the library pass that follows a mod update; None if none are installed."""
    console.print("\n[orange1]Libraries[/orange1]")
    try:
        return orchestrator.update_libraries(
            folder,
            config.library_source,
            on_outcome=print_outcome,
            cancel_event=cancel,
        )
    except NoModulesFoundError as e:
        logger.info(e.message)
        console.print(f"[dim]{e.message}[/dim]")
        return None


def _finish(result: RunResult, dry_run: bool, summary: str | None = None) -> None:
    print_error_summary(result)
    if summary:
        console.print(Panel(summary, title="Summary"))
    if result.cancelled and result.fatal_error is None:
        raise typer.Exit(EXIT_INTERRUPTED)
    if not result.succeeded:
        raise typer.Exit(1)
    message = "Finished checking mod updates" if dry_run else "Finished updating mods"
    console.print(f"\n[slateblue3]{message}.[/slateblue3]")


@app.command()
def update(
    mods_folder: Optional[Path] = typer.Argument(None, help="Path to resonite mods folder"),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="GitHub token for the official API. Optional, alternative to the tag feed",
    ),
    dry: bool = typer.Option(
        False, "--dry", "-d", help="Check for mod updates without installing them"
    ),
    skip_libraries: bool = typer.Option(
        False,
        "--skip-libraries",
        help="Do not update ResoniteModLoader and Harmony after the mods",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Update resonite mods, then the loader libraries."""
    _configure_logging(verbose)
    config, folder = _load(mods_folder, token, dry)
    _print_header("Update Mods", config, folder)

    with _cancel_on_interrupt() as cancel, _build_client(config, cancel) as client:
        orchestrator = UpdateOrchestrator.from_config(config, client=client)
        try:
            result = orchestrator.run(folder, on_outcome=print_outcome, cancel_event=cancel)
            if result.succeeded and not skip_libraries:
                libraries_result = _update_libraries_after_mods(
                    orchestrator, folder, config, cancel
                )
                if libraries_result is not None:
                    result.extend(libraries_result)
        except NoModulesFoundError:
            console.print("[red]No Mods found to update.[/red]")
            raise typer.Exit(1)
        except UpdaterError as e:
            console.print(f"[red]{format_exception(e)}[/red]")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/yellow]")
            raise typer.Exit(EXIT_INTERRUPTED)

    _finish(result, config.dry_run, orchestrator.summary(result) if verbose else None)


@app.command()
def libraries(
    mods_folder: Optional[Path] = typer.Argument(None, help="Path to resonite mods folder"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="GitHub token"),
    dry: bool = typer.Option(False, "--dry", "-d", help="Check without installing"),
    source: Optional[str] = typer.Option(
        None, "--source", "-s", help="Alternative ResoniteModLoader repository URL"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Update only the libraries (ResoniteModLoader and Harmony)."""
    _configure_logging(verbose)
    config, folder = _load(mods_folder, token, dry, library_source=source)
    _print_header("Update Libraries", config, folder)

    with _cancel_on_interrupt() as cancel, _build_client(config, cancel) as client:
        orchestrator = UpdateOrchestrator.from_config(config, client=client)
        try:
            result = orchestrator.update_libraries(
                folder, config.library_source, on_outcome=print_outcome, cancel_event=cancel
            )
        except NoModulesFoundError as e:
            console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/yellow]")
            raise typer.Exit(EXIT_INTERRUPTED)

    _finish(result, config.dry_run, orchestrator.summary(result) if verbose else None)


@app.command()
def version():
    """Show Resonite Mod Updater version."""
    from resonite_mod_updater import __version__

    console.print(f"Resonite Mod Updater v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
