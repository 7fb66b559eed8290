"""Site CLI commands - create, info, restart, reload."""
from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from sitebox.cli_support import (
    confirm_action,
    get_record_store,
    handle_cli_error,
    is_mock,
    print_info,
    print_success,
    report_provisioning_failure,
    setup_file_logging,
)
from sitebox.core.config import get_config
from sitebox.core.errors import ProvisioningFailed, SiteboxError
from sitebox.core.logger import log_section
from sitebox.core.site_ops import SiteOperations, site_info_rows
from sitebox.core.validator import SiteRequest, SiteValidator, normalize_site_url, resolve_php_version
from sitebox.core.workflow import ProvisioningWorkflow
from sitebox.services.docker import DockerRuntime

SiteTyper = typer.Typer(help="Create and manage PHP sites")


def render_info(console: Console, rows) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    for label, value in rows:
        table.add_row(label, str(value))
    console.print(table)


def register_site_commands(root: typer.Typer, console: Console) -> None:
    """Attach site-related commands to the main CLI."""

    def _operations() -> SiteOperations:
        config = get_config()
        runtime = DockerRuntime(mock=is_mock(), timeout=config.command_timeout)
        return SiteOperations(get_record_store(config), runtime)

    @SiteTyper.command("create")
    def create_command(
        site_url: str = typer.Argument(..., help="Name of the website."),
        cache: bool = typer.Option(False, "--cache", help="Use redis cache for PHP."),
        with_local_redis: bool = typer.Option(False, "--with-local-redis", help="Enable cache with a local redis container."),
        php: str = typer.Option("latest", "--php", help="PHP version (5.6, 7.0-7.4, 8.0-8.4 or latest)."),
        alias_domains: str = typer.Option("", "--alias-domains", help="Comma separated list of alias domains."),
        ssl: Optional[str] = typer.Option(None, "--ssl", help="SSL mode: self, le, inherit or custom."),
        ssl_key: Optional[str] = typer.Option(None, "--ssl-key", help="Path to the SSL key file (custom SSL)."),
        ssl_crt: Optional[str] = typer.Option(None, "--ssl-crt", help="Path to the SSL crt file (custom SSL)."),
        wildcard: bool = typer.Option(False, "--wildcard", help="Get a wildcard certificate."),
        with_db: bool = typer.Option(False, "--with-db", help="Create a database for the site."),
        local_db: bool = typer.Option(False, "--local-db", help="Run a separate db container instead of the global db."),
        dbname: Optional[str] = typer.Option(None, "--dbname", help="Database name."),
        dbuser: Optional[str] = typer.Option(None, "--dbuser", help="Database user."),
        dbpass: Optional[str] = typer.Option(None, "--dbpass", help="Database password."),
        dbhost: Optional[str] = typer.Option(None, "--dbhost", help="Remote database host (host or host:port)."),
        admin_email: Optional[str] = typer.Option(None, "--admin-email", help="E-Mail of the administrator."),
        public_dir: Optional[str] = typer.Option(None, "--public-dir", help="Custom source directory inside htdocs."),
        skip_check: bool = typer.Option(False, "--skip-check", help="Do not check the database connection."),
        skip_status_check: bool = typer.Option(False, "--skip-status-check", help="Skip the site status check."),
        force: bool = typer.Option(False, "--force", help="Reset the remote database if it is not empty."),
        yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
    ) -> None:
        """Create a PHP site."""
        config = get_config()
        setup_file_logging(config, verbose=verbose)

        if is_mock():
            print_info(console, "Running in mock mode (SB_MOCK=1): docker commands are only logged")

        try:
            version, changed = resolve_php_version(php)
        except SiteboxError as e:
            handle_cli_error(e, console, verbose)
        if changed:
            print_info(console, f"PHP {php} is not available, using {version}")
            if not confirm_action(f"Continue with PHP {version}?", yes_flag=yes):
                console.print("[yellow]Cancelled[/yellow]")
                raise typer.Exit(1)

        request = SiteRequest(
            site_url=site_url,
            cache=cache or with_local_redis,
            local_cache=with_local_redis,
            php_version=version,
            alias_domains=alias_domains,
            ssl=ssl,
            ssl_key=ssl_key,
            ssl_crt=ssl_crt,
            wildcard=wildcard,
            with_db=with_db or local_db,
            local_db=local_db,
            dbname=dbname,
            dbuser=dbuser,
            dbpass=dbpass,
            dbhost=dbhost,
            admin_email=admin_email,
            public_dir=public_dir,
            skip_status_check=skip_status_check,
            skip_db_check=skip_check,
            force=force,
        )

        with log_section("site create", asdict(request)):
            workflow = ProvisioningWorkflow.from_config(config, mock=is_mock())
            try:
                site = SiteValidator(workflow.records, config).validate(request)
            except SiteboxError as e:
                handle_cli_error(e, console, verbose)

            console.print(f"[bold]Creating PHP site {site.site_url}[/bold]")
            try:
                result = workflow.run(site)
            except ProvisioningFailed as e:
                report_provisioning_failure(e, console)
                if verbose:
                    console.print_exception()
                raise typer.Exit(1)

        render_info(console, site_info_rows(result.record))
        print_success(console, f"Site {site.site_url} created successfully")

    @SiteTyper.command("info")
    def info_command(
        site_url: str = typer.Argument(..., help="Name of the website."),
        json_output: bool = typer.Option(False, "--json", help="Print the stored record as JSON."),
    ) -> None:
        """Show details of a site."""
        ops = _operations()
        try:
            record = ops.get(normalize_site_url(site_url))
        except SiteboxError as e:
            handle_cli_error(e, console)
        if json_output:
            console.print_json(record.model_dump_json())
            return
        render_info(console, site_info_rows(record))

    @SiteTyper.command("restart")
    def restart_command(
        site_url: str = typer.Argument(..., help="Name of the website."),
        services: Optional[List[str]] = typer.Option(
            None, "--service", "-s", help="Service to restart (nginx, php, db). Repeatable; default all."
        ),
    ) -> None:
        """Restart containers of a site."""
        try:
            restarted = _operations().restart(normalize_site_url(site_url), services)
        except SiteboxError as e:
            handle_cli_error(e, console)
        print_success(console, f"Restarted {', '.join(restarted)}")

    @SiteTyper.command("reload")
    def reload_command(
        site_url: str = typer.Argument(..., help="Name of the website."),
        services: Optional[List[str]] = typer.Option(
            None, "--service", "-s", help="Service to reload (nginx, php). Repeatable; default all."
        ),
    ) -> None:
        """Reload services of a site without restarting containers."""
        try:
            reloaded = _operations().reload(normalize_site_url(site_url), services)
        except SiteboxError as e:
            handle_cli_error(e, console)
        print_success(console, f"Reloaded {', '.join(reloaded)}")

    root.add_typer(SiteTyper, name="site")
