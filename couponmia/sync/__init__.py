"""Affiliate-network sync: API client, discount parsing, scoring and upserts."""

from .affiliate import AffiliateAPIError, AffiliateClient
from .discounts import ParsedDiscount, analyze_discounts, best_offer, parse_discount
from .scoring import FEATURED_THRESHOLD, PopularityScore, calculate_popularity, generate_rating_and_reviews
from .service import COMMANDS, DataSyncService, StoreNotFoundError, SyncResult

__all__ = [
    "AffiliateAPIError",
    "AffiliateClient",
    "COMMANDS",
    "DataSyncService",
    "FEATURED_THRESHOLD",
    "ParsedDiscount",
    "PopularityScore",
    "StoreNotFoundError",
    "SyncResult",
    "analyze_discounts",
    "best_offer",
    "calculate_popularity",
    "generate_rating_and_reviews",
    "parse_discount",
]
