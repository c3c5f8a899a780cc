"""CouponMia: coupon page scraping and affiliate store sync."""

from .scraping import (
	CouponRecord,
	CouponScraper,
	MerchantInfo,
	ScrapeResult,
	SiteConfig,
	UnsupportedSiteError,
	detect_site,
	get_site_config,
	parse_html,
	scrape_html,
)

from .sync import (
	DataSyncService,
	ParsedDiscount,
	StoreNotFoundError,
	SyncResult,
	calculate_popularity,
	parse_discount,
)

__all__ = [
	"CouponRecord",
	"CouponScraper",
	"DataSyncService",
	"MerchantInfo",
	"ParsedDiscount",
	"ScrapeResult",
	"SiteConfig",
	"StoreNotFoundError",
	"SyncResult",
	"UnsupportedSiteError",
	"calculate_popularity",
	"detect_site",
	"get_site_config",
	"parse_discount",
	"parse_html",
	"scrape_html",
]
