"""Affiliate sync commands."""
from __future__ import annotations

import sys
from typing import Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from couponmia.sync.affiliate import AffiliateClient
from couponmia.sync.service import COMMANDS, DataSyncService, StoreNotFoundError, SyncResult
from couponmia.workflow.config import get_settings
from couponmia.workflow.db import init_db

console = Console()


def _build_service(test_mode: bool) -> DataSyncService:
    settings = get_settings()
    if test_mode and settings.affiliate_enabled:
        client = AffiliateClient.from_settings(settings, test_mode=True)
        return DataSyncService.from_settings(settings, client=client)
    return DataSyncService.from_settings(settings)


@click.command(name="sync")
@click.argument("command", default="all", type=click.Choice(COMMANDS))
@click.option("--store", "store_name", help="Limit analyze/popularity to one store")
@click.option("--test-mode", is_flag=True, help="Fetch only the first page of each feed")
def sync_command(command: str, store_name: Optional[str], test_mode: bool):
    """
    Run the affiliate sync pipeline.

    COMMAND is one of all, stores, coupons, popularity, analyze or cleanup.
    """
    init_db()
    service = _build_service(test_mode)
    results = service.run(command, store_name)
    _show_results(results)
    if any(result.failed for result in results.values()):
        sys.exit(1)


@click.command(name="sync-store")
@click.argument("store_name")
def store_command(store_name: str):
    """Refresh discount analysis and popularity for one store."""
    init_db()
    try:
        outcome = _build_service(False).sync_store(store_name)
    except StoreNotFoundError as exc:
        raise click.ClickException(str(exc))

    console.print(f"[bold cyan]{outcome['store']['name']}[/bold cyan]")
    _show_results({"analyze": outcome["analyze"], "popularity": outcome["popularity"]})


def _show_results(results: Dict[str, SyncResult]) -> None:
    table = Table(
        title="Sync Results",
        show_header=True,
        header_style="bold cyan",
        border_style="cyan",
    )
    table.add_column("Step", style="yellow")
    table.add_column("Processed", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="dim")

    for name, result in results.items():
        table.add_row(name, str(result.processed), str(result.success), str(result.failed), str(result.skipped))

    console.print(table)
