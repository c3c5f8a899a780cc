"""FastAPI server used by the scraper browser extension and store webhooks."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from couponmia.scraping.browser import BrowserConfig, fetch_rendered_html
from couponmia.scraping.scraper import CouponRecord, UnsupportedSiteError, resolve_site, scrape_html
from couponmia.scraping.site_configs import SITE_CONFIGS
from couponmia.sync.service import DataSyncService, StoreNotFoundError
from couponmia.workflow.config import get_settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CouponMia Backend API",
    description="Coupon scraping and store sync endpoints for the browser extension",
    version="1.0.0",
)

# Browser extension origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ScrapeRequest(BaseModel):
    """Scrape a page; ``html`` skips rendering and scrapes the given snapshot."""

    url: str
    html: Optional[str] = None
    title: Optional[str] = None
    site: Optional[str] = None


class ImportRequest(BaseModel):
    site: str
    records: List[Dict[str, Any]] = Field(default_factory=list)


class StoreSyncRequest(BaseModel):
    store: str = Field(min_length=1)


def get_sync_service() -> DataSyncService:
    return DataSyncService.from_settings(get_settings())


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "sites": list(SITE_CONFIGS),
    }


@app.get("/sites")
async def list_sites():
    return {
        "sites": [
            {
                "key": config.key,
                "name": config.name,
                "domains": list(config.domains),
                "urlPatterns": list(config.url_patterns),
            }
            for config in SITE_CONFIGS.values()
        ]
    }


@app.post("/scrape")
def scrape(request: ScrapeRequest):
    """Scrape coupons from a page snapshot (rendering it first when no HTML is sent)."""
    settings = get_settings()
    try:
        config = resolve_site(request.url, request.site)
    except UnsupportedSiteError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    html, title = request.html, request.title
    try:
        if html is None:
            rendered = fetch_rendered_html(
                request.url,
                config=BrowserConfig(headless=settings.playwright_headless, browser_type=settings.playwright_browser),
                wait_for_selector=config.selectors.coupon_container,
                wait_timeout_ms=settings.scrape_wait_timeout_ms,
                settle_ms=settings.scrape_settle_ms,
            )
            html, title = rendered.html, title or rendered.title
        result = scrape_html(
            html,
            request.url,
            site_key=config.key,
            title=title,
            viglink_api_key=settings.viglink_api_key,
        )
    except Exception as exc:
        logger.exception("Scrape failed for %s", request.url)
        raise HTTPException(status_code=500, detail={"error": "Scrape failed", "message": str(exc)})

    logger.info("Scraped %d coupons from %s", len(result.records), request.url)
    return {"success": True, **result.to_dict()}


@app.post("/coupons/import")
def import_coupons(request: ImportRequest, service: DataSyncService = Depends(get_sync_service)):
    """Persist coupons scraped by the extension under their merchants' stores."""
    if request.site not in SITE_CONFIGS:
        raise HTTPException(status_code=404, detail=f"Unknown site: {request.site}")
    try:
        records = [CouponRecord.from_dict(item) for item in request.records]
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        result = service.import_scraped_coupons(records, request.site)
    except SQLAlchemyError as exc:
        logger.error("Coupon import failed: %s", exc)
        raise HTTPException(status_code=500, detail={"error": "Import failed", "message": str(exc)})

    return {
        "success": result.failed == 0,
        "inserted": result.success,
        "skipped": result.skipped,
        "failed": result.failed,
        "stores": result.details.get("stores", []),
    }


@app.post("/webhook/sync/store")
def sync_store_webhook(request: StoreSyncRequest, service: DataSyncService = Depends(get_sync_service)):
    """Refresh discount analysis and popularity for one store."""
    try:
        outcome = service.sync_store(request.store)
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except SQLAlchemyError as exc:
        logger.error("Store sync failed for %s: %s", request.store, exc)
        raise HTTPException(status_code=500, detail={"error": "Store sync failed", "message": str(exc)})

    return {
        "success": True,
        "store": outcome["store"],
        "analyze": outcome["analyze"].as_dict(),
        "popularity": outcome["popularity"].as_dict(),
    }


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server."""
    uvicorn.run(
        "couponmia.workflow.api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_server_host, port=settings.api_server_port, reload=settings.environment == "development")
