#!/usr/bin/env python3
"""Main CLI entry point for CouponMia scraping and sync."""
from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from .commands import db, scrape, sites, sync

console = Console()


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
@click.version_option(version="0.1.0", prog_name="couponmia")
def cli(log_level: str):
    """
    CouponMia CLI - coupon page scraping and affiliate store sync.

    Scrape coupon sites into merchant/coupon records, import them into
    the store database, and run the affiliate sync pipeline.
    """
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# Register all commands
cli.add_command(scrape.scrape_command)
cli.add_command(scrape.import_command)
cli.add_command(sync.sync_command)
cli.add_command(sync.store_command)
cli.add_command(sites.sites_command)
cli.add_command(db.init_db_command)


def main():
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
