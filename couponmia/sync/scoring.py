"""Popularity score and placeholder rating figures for stores."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Tuple

FEATURED_THRESHOLD = 50
MAX_SCORE = 100

LOGO_SCORE = 8
LOGO_QUALITY_BONUS = 2

# (minimum active coupons, points), checked top-down.
COUPON_TIERS: Tuple[Tuple[int, int], ...] = (
    (50, 90),
    (30, 80),
    (20, 70),
    (15, 60),
    (10, 50),
    (5, 40),
    (3, 30),
    (2, 20),
    (1, 10),
)

# (minimum active coupons, rating floor, review floor, review spread)
RATING_TIERS: Tuple[Tuple[int, float, int, int], ...] = (
    (50, 4.3, 800, 500),
    (30, 4.1, 500, 300),
    (20, 3.9, 300, 200),
    (15, 3.7, 200, 150),
    (10, 3.5, 120, 100),
    (5, 3.3, 60, 80),
    (2, 3.1, 25, 50),
    (1, 3.0, 10, 30),
)


@dataclass(frozen=True)
class PopularityScore:
    score: int
    has_logo: bool
    coupons_count: int

    @property
    def is_featured(self) -> bool:
        return self.score >= FEATURED_THRESHOLD


def calculate_popularity(logo_url: Optional[str], coupons_count: int) -> PopularityScore:
    """Score a store from logo presence and active coupon count (0-100)."""

    score = 0
    has_logo = bool(logo_url and logo_url.strip())
    if has_logo:
        score += LOGO_SCORE
        if "https://" in logo_url or ".png" in logo_url or ".jpg" in logo_url:
            score += LOGO_QUALITY_BONUS

    count = max(coupons_count or 0, 0)
    for minimum, points in COUPON_TIERS:
        if count >= minimum:
            score += points
            break

    return PopularityScore(score=min(score, MAX_SCORE), has_logo=has_logo, coupons_count=count)


def generate_rating_and_reviews(active_offers_count: int, seed: Optional[str] = None) -> Tuple[float, int]:
    """Return a display rating (3.0-4.5) and review count tiered by coupon count.

    The figures are synthetic. A seeded generator keeps them stable between
    runs for the same store and count.
    """

    count = max(active_offers_count or 0, 0)
    rng = random.Random(f"{seed or ''}:{count}")
    for minimum, rating_floor, review_floor, review_spread in RATING_TIERS:
        if count >= minimum:
            rating = rating_floor + rng.random() * 0.2
            reviews = review_floor + rng.randrange(review_spread)
            break
    else:
        rating, reviews = 3.0, 0
    rating = max(3.0, min(4.5, rating))
    return round(rating, 1), reviews


__all__ = [
    "FEATURED_THRESHOLD",
    "PopularityScore",
    "calculate_popularity",
    "generate_rating_and_reviews",
]
