"""Database commands."""
from __future__ import annotations

import click
from rich.console import Console

from couponmia.workflow.config import get_settings
from couponmia.workflow.db import init_db

console = Console()


@click.command(name="init-db")
def init_db_command():
    """Create the store, coupon and log tables."""
    init_db()
    console.print(f"[green]✓[/green] Database ready at {get_settings().resolved_database_url()}")
