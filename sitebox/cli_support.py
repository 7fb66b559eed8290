"""Shared utilities for sitebox CLI modules."""
from __future__ import annotations

import os
from typing import Optional

import typer
from rich.console import Console

from sitebox.core.config import SiteboxConfig, get_config
from sitebox.core.errors import ProvisioningFailed
from sitebox.core.record_store import SiteRecordStore


def is_mock() -> bool:
    """Return True when CLI runs in mock mode."""
    return os.environ.get("SB_MOCK") == "1"


def setup_file_logging(config: SiteboxConfig, verbose: bool = False) -> None:
    """Start the run log of a CLI command under the configured log directory."""
    from sitebox.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(config.log_file, verbose=verbose)


def get_record_store(config: Optional[SiteboxConfig] = None) -> SiteRecordStore:
    config = config or get_config()
    return SiteRecordStore(config.records_file, config.lock_file)


def confirm_action(message: str, yes_flag: bool = False) -> bool:
    """Prompt user for confirmation unless --yes was given."""
    if yes_flag:
        return True
    return typer.confirm(message)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def report_provisioning_failure(e: ProvisioningFailed, console: Console) -> None:
    """Print the cause and the rollback outcome of a failed create."""
    console.print(f"[red]Error:[/red] {e.cause}")
    report = e.report
    if report is None:
        return
    if report.ok:
        print_warning(console, f"Rolled back {report.site_url} (level {report.level}).")
        return
    print_warning(console, f"Rollback of {report.site_url} was incomplete:")
    for step in report.failed:
        print_error(console, f"{step.step}: {step.error.reason if step.error else 'failed'}")


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting."""
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[blue]{prefix}[/blue] {message}")
