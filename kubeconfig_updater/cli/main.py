"""Main entry point for the Rancher kubeconfig updater."""

import asyncio
from typing import Any

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kubeconfig_updater._version import __version__
from kubeconfig_updater.cli.helpers import bold, dim, get_rich_toolkit, warning
from kubeconfig_updater.config.settings import ConfigurationError, Settings
from kubeconfig_updater.core.logging import get_logger, setup_logging
from kubeconfig_updater.exceptions import (
    KubeconfigError,
    ProviderError,
    RancherAuthenticationError,
)
from kubeconfig_updater.kubeconfig.storage import KubeconfigStorage
from kubeconfig_updater.rancher.client import RancherClient
from kubeconfig_updater.services.updater import KubeconfigUpdater, UpdateSummary


PASSWORD_PROMPT_VALUE = "-"

console = Console()
logger = get_logger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        toolkit = get_rich_toolkit()
        toolkit.print(f"kubeconfig-updater {__version__}", tag="version")
        raise typer.Exit()


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=False,
    pretty_exceptions_enable=False,
)


def _flag(value: bool) -> bool | None:
    """Flags only override the environment when they are given."""
    return True if value else None


def read_password(value: str | None) -> str | None:
    """Resolve the password option, prompting when it is ``-``."""
    if value == PASSWORD_PROMPT_VALUE:
        password: str = typer.prompt("Enter Rancher Password", hide_input=True)
        return password
    return value


def print_summary(summary: UpdateSummary) -> None:
    """Print the per-cluster results of a run."""
    title = "Dry Run" if summary.dry_run else "Kubeconfig Update"
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title=title,
        title_style="bold white",
    )
    table.add_column("Cluster", style="cyan")
    table.add_column("Result", style="white")

    updated_label = "would update" if summary.dry_run else "updated"
    skipped_label = "would skip" if summary.dry_run else "skipped"
    for name in summary.updated:
        table.add_row(name, f"[green]{updated_label}[/green]")
    for name in summary.skipped:
        table.add_row(name, dim(skipped_label))
    for name in summary.failed:
        table.add_row(name, "[red]failed[/red]")

    console.print(table)
    console.print(f"Kubeconfig: {bold(escape(str(summary.kubeconfig_path)))}")
    if summary.backup_path is not None:
        console.print(f"Backup: {escape(str(summary.backup_path))}")
    if summary.dry_run:
        console.print(warning("No changes were made to the kubeconfig."))


async def run_update(settings: Settings) -> UpdateSummary:
    """Log in to Rancher and update the kubeconfig."""
    storage = KubeconfigStorage(settings.kubeconfig_path)
    async with RancherClient(settings.rancher_client_config()) as client:
        updater = KubeconfigUpdater(settings, client, storage)
        return await updater.run()


@app.command()
def main(
    auto_create: bool = typer.Option(
        False,
        "--auto-create",
        "-a",
        help="Automatically create kubeconfig entries for clusters not found in the config",
    ),
    auth_type: str | None = typer.Option(
        None,
        "--auth-type",
        help="Authentication type: 'local' or 'ldap' (default: RANCHER_AUTH_TYPE or 'local')",
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="Rancher username"),
    password: str | None = typer.Option(
        None,
        "--password",
        "-p",
        help="Rancher password, '-' to prompt for it",
    ),
    cluster: str | None = typer.Option(
        None,
        "--cluster",
        help="Comma-separated list of cluster names or IDs to update",
    ),
    insecure_skip_tls_verify: bool = typer.Option(
        False,
        "--insecure-skip-tls-verify",
        help="Skip TLS certificate verification (insecure, use only for development/testing)",
    ),
    config: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to kubeconfig file (default: KUBECONFIG or ~/.kube/config)",
    ),
    threshold_days: int | None = typer.Option(
        None,
        "--threshold-days",
        min=0,
        help="Expiration threshold in days (default: 30)",
    ),
    force_refresh: bool = typer.Option(
        False,
        "--force-refresh",
        help="Bypass expiration checks and force regeneration",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview changes without modifying kubeconfig",
    ),
    with_directly: bool = typer.Option(
        False,
        "--with-directly",
        help="Include direct contexts for direct cluster access",
    ),
    token_source: str | None = typer.Option(
        None,
        "--token-source",
        help="Where token expiration is read from: 'claims' or 'rancher'",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_format: str | None = typer.Option(
        None,
        "--log-format",
        help="Logging output format: 'pipe', 'json' or 'rich'",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Update kubeconfig tokens for Rancher-managed Kubernetes clusters."""
    toolkit = get_rich_toolkit()

    overrides: dict[str, Any] = {
        "auto_create": _flag(auto_create),
        "rancher_auth_type": auth_type,
        "rancher_username": user,
        "rancher_password": read_password(password),
        "cluster_filter": cluster,
        "rancher_insecure_skip_tls_verify": _flag(insecure_skip_tls_verify),
        "kubeconfig_path": config,
        "token_threshold_days": threshold_days,
        "force_refresh": _flag(force_refresh),
        "dry_run": _flag(dry_run),
        "with_directly": _flag(with_directly),
        "token_expiration_source": token_source,
    }

    try:
        settings = Settings.from_env(
            log_level=log_level, log_format=log_format, **overrides
        )
    except ConfigurationError as e:
        toolkit.print(f"Configuration error: {escape(str(e))}", tag="error")
        raise typer.Exit(1) from e

    setup_logging(settings.logging.format, settings.logging.level)

    missing = settings.missing_rancher_settings()
    if missing:
        toolkit.print(
            f"Missing Rancher settings: {', '.join(missing)}", tag="error"
        )
        raise typer.Exit(1)

    try:
        summary = asyncio.run(run_update(settings))
    except ConfigurationError as e:
        toolkit.print(f"Configuration error: {escape(str(e))}", tag="error")
        raise typer.Exit(1) from e
    except RancherAuthenticationError as e:
        logger.error("rancher_authentication_failed", error=str(e))
        toolkit.print(
            f"Failed to authenticate with Rancher: {escape(str(e))}", tag="error"
        )
        raise typer.Exit(1) from e
    except ProviderError as e:
        logger.error("rancher_cluster_list_failed", error=str(e))
        toolkit.print(
            f"Failed to retrieve cluster list from Rancher: {escape(str(e))}",
            tag="error",
        )
        raise typer.Exit(1) from e
    except KubeconfigError as e:
        logger.error("kubeconfig_update_failed", error=str(e))
        toolkit.print(f"Failed to update kubeconfig: {escape(str(e))}", tag="error")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Update cancelled by user.[/yellow]")
        raise typer.Exit(1) from None

    print_summary(summary)
    if summary.dry_run:
        toolkit.print("Dry run complete", tag="dry-run")
    elif summary.failed:
        toolkit.print(
            f"{len(summary.failed)} cluster(s) could not be updated", tag="warning"
        )
    else:
        toolkit.print("All cluster tokens have been updated", tag="success")


def entrypoint() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    entrypoint()
