#!/usr/bin/env python3
"""sitebox CLI - Self-contained PHP sites on docker compose."""

import typer
from rich.console import Console

from sitebox import __version__
from sitebox.cli_site_commands import register_site_commands
from sitebox.core.logger import get_logger

app = typer.Typer(
    name="sitebox",
    help="""sitebox - Self-contained PHP sites on docker compose

One command per site. nginx + php + mail, optional database and cache.

Quick start:
  sitebox site create example.test                 # Plain PHP site
  sitebox site create shop.test --with-db --cache  # With database and redis
  sitebox site info example.test                   # Show credentials and paths

Set SB_MOCK=1 to log docker commands instead of running them.
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

register_site_commands(app, console)


@app.command()
def version():
    """Show sitebox version."""
    console.print(f"sitebox v{__version__}")


if __name__ == "__main__":
    app()
