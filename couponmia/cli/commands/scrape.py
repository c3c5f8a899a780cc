"""Scrape and import commands."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from couponmia.scraping.browser import BrowserConfig, fetch_rendered_html
from couponmia.scraping.scraper import CouponRecord, ScrapeResult, UnsupportedSiteError, resolve_site, scrape_html
from couponmia.sync.service import DataSyncService
from couponmia.workflow.config import get_settings
from couponmia.workflow.db import init_db

console = Console()


@click.command(name="scrape")
@click.argument("url")
@click.option("--html", "html_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Scrape a saved HTML snapshot instead of rendering the page")
@click.option("--site", help="Site key (detected from the URL by default)")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write records as JSON")
@click.option("--import", "import_records", is_flag=True, help="Import scraped coupons into the database")
def scrape_command(url: str, html_file: Optional[Path], site: Optional[str], output: Optional[Path],
                   import_records: bool):
    """
    Scrape coupons from a supported coupon page.

    The page is rendered with Playwright unless --html points at a saved
    snapshot of it.
    """
    settings = get_settings()
    try:
        config = resolve_site(url, site)
    except UnsupportedSiteError as exc:
        raise click.ClickException(str(exc))

    title = None
    if html_file is not None:
        html = html_file.read_text(encoding="utf-8")
    else:
        with console.status(f"[cyan]Rendering {url}...[/cyan]"):
            rendered = fetch_rendered_html(
                url,
                config=BrowserConfig(headless=settings.playwright_headless, browser_type=settings.playwright_browser),
                wait_for_selector=config.selectors.coupon_container,
                wait_timeout_ms=settings.scrape_wait_timeout_ms,
                settle_ms=settings.scrape_settle_ms,
            )
        html, title = rendered.html, rendered.title

    result = scrape_html(html, url, site_key=config.key, title=title, viglink_api_key=settings.viglink_api_key)
    _show_result(result)

    if output is not None:
        output.write_text(json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote {len(result.records)} records to {output}")

    if import_records and result.records:
        init_db()
        imported = DataSyncService.from_settings(settings).import_scraped_coupons(result.records, config.key)
        console.print(f"[green]✓[/green] Imported {imported.success} coupons ({imported.skipped} already present)")


@click.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--site", required=True, help="Site key the records were scraped from")
def import_command(file: Path, site: str):
    """Import coupon records from a JSON file written by `scrape --output`."""
    data = json.loads(file.read_text(encoding="utf-8"))
    items = data.get("records", []) if isinstance(data, dict) else data
    try:
        records = [CouponRecord.from_dict(item) for item in items]
    except (TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid coupon record: {exc}")

    init_db()
    result = DataSyncService.from_settings(get_settings()).import_scraped_coupons(records, site)
    console.print(
        f"[green]✓[/green] Imported {result.success} coupons, "
        f"skipped {result.skipped}, failed {result.failed}"
    )


def _show_result(result: ScrapeResult) -> None:
    merchant = result.merchant
    console.print(f"[bold cyan]{merchant.name}[/bold cyan] [dim]{merchant.url}[/dim]")
    if not result.records:
        console.print("[yellow]No coupons found[/yellow]")
        return

    table = Table(
        title=f"Coupons ({result.strategy})",
        show_header=True,
        header_style="bold cyan",
        border_style="cyan",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="white")
    table.add_column("Code", style="yellow")
    table.add_column("Discount", style="green")

    for index, record in enumerate(result.records, start=1):
        table.add_row(str(index), record.promotion_title[:60], record.coupon_code or "-", record.subtitle)

    console.print(table)
