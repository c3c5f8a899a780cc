"""Supported site listing."""
from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from couponmia.scraping.selectors import describe
from couponmia.scraping.site_configs import SITE_CONFIGS

console = Console()


@click.command(name="sites")
@click.option("--selectors", "show_selectors", is_flag=True, help="Show the item selectors for each site")
def sites_command(show_selectors: bool):
    """List the coupon sites the scraper supports."""
    table = Table(
        title="Supported Sites",
        show_header=True,
        header_style="bold cyan",
        border_style="cyan",
    )
    table.add_column("Key", style="yellow")
    table.add_column("Name", style="white")
    table.add_column("Domains")
    table.add_column("URL Patterns", style="dim")
    if show_selectors:
        table.add_column("Items", style="green")

    for config in SITE_CONFIGS.values():
        row = [config.key, config.name, ", ".join(config.domains), ", ".join(config.url_patterns)]
        if show_selectors:
            row.append(describe(config.selectors.coupon_items))
        table.add_row(*row)

    console.print(table)
