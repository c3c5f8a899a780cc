"""Simple command-line helpers for workflow orchestration."""
from __future__ import annotations

import argparse
import json
import sys

from celery.result import AsyncResult

from couponmia.sync.service import COMMANDS

from .config import get_settings
from .db import init_db
from .tasks import enqueue_scrape, enqueue_sync, enqueue_sync_store


def cmd_init_db(args):
    """Initialize the database."""
    print("Initializing database...")
    try:
        init_db()
        print("✅ Database initialized successfully")
    except Exception as exc:
        print(f"❌ Database initialization failed: {exc}")
        sys.exit(1)


def cmd_serve_api(args):
    """Start the API server for the browser extension."""
    from .api_server import run_server

    print(f"Starting API server on {args.host}:{args.port}")
    if args.reload:
        print("Auto-reload enabled for development")
    try:
        run_server(host=args.host, port=args.port, reload=args.reload)
    except Exception as exc:
        print(f"❌ Error starting API server: {exc}")
        sys.exit(1)


def _print_task(result: AsyncResult) -> None:
    print(json.dumps({"task_id": result.id, "state": result.state}, indent=2))


def cmd_enqueue_scrape(args):
    """Schedule a coupon scrape task."""
    _print_task(enqueue_scrape(url=args.url, site_key=args.site, import_records=args.import_records))


def cmd_enqueue_sync(args):
    """Schedule an affiliate sync task."""
    _print_task(enqueue_sync(command=args.sync_command, store_name=args.store))


def cmd_enqueue_sync_store(args):
    """Schedule a single-store refresh task."""
    _print_task(enqueue_sync_store(store_name=args.store_name))


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="CouponMia workflow management CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Initialize the database")
    init_parser.set_defaults(func=cmd_init_db)

    api_parser = subparsers.add_parser("serve-api", help="Start the API server for the browser extension")
    api_parser.add_argument("--host", default=settings.api_server_host, help="Host to bind the server to")
    api_parser.add_argument("--port", type=int, default=settings.api_server_port, help="Port to bind the server to")
    api_parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    api_parser.set_defaults(func=cmd_serve_api)

    scrape_parser = subparsers.add_parser("enqueue-scrape", help="Schedule a coupon scrape task")
    scrape_parser.add_argument("url", help="Coupon page URL")
    scrape_parser.add_argument("--site", default=None, help="Site key (detected from the URL by default)")
    scrape_parser.add_argument(
        "--import", dest="import_records", action="store_true", help="Import scraped coupons into the database"
    )
    scrape_parser.set_defaults(func=cmd_enqueue_scrape)

    sync_parser = subparsers.add_parser("enqueue-sync", help="Schedule an affiliate sync task")
    sync_parser.add_argument("sync_command", nargs="?", default="all", choices=COMMANDS, help="Sync command")
    sync_parser.add_argument("--store", default=None, help="Limit analyze/popularity to one store")
    sync_parser.set_defaults(func=cmd_enqueue_sync)

    store_parser = subparsers.add_parser("enqueue-sync-store", help="Schedule analysis and popularity for one store")
    store_parser.add_argument("store_name", help="Store name or alias")
    store_parser.set_defaults(func=cmd_enqueue_sync_store)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
