"""Tests for store popularity and rating figures."""
from __future__ import annotations

import pytest

from couponmia.sync.scoring import FEATURED_THRESHOLD, calculate_popularity, generate_rating_and_reviews


def test_logo_and_twelve_coupons_is_featured() -> None:
    result = calculate_popularity("https://cdn.example.com/acme.png", 12)
    assert result.score >= FEATURED_THRESHOLD
    assert result.is_featured
    assert result.has_logo


def test_no_logo_and_no_coupons_is_not_featured() -> None:
    result = calculate_popularity(None, 0)
    assert result.score == 0
    assert not result.is_featured
    assert not result.has_logo


@pytest.mark.parametrize(
    "logo, count, expected",
    [
        ("", 1, 10),
        ("  ", 3, 30),
        ("acme-logo", 5, 48),
        ("https://x/logo.svg", 10, 60),
        (None, 10, 50),
        ("https://x/logo.png", 500, 100),
        (None, -4, 0),
    ],
)
def test_popularity_tiers(logo, count: int, expected: int) -> None:
    assert calculate_popularity(logo, count).score == expected


def test_popularity_is_capped() -> None:
    assert calculate_popularity("https://x/logo.png", 10_000).score <= 100


@pytest.mark.parametrize(
    "count, rating_range, review_range",
    [
        (0, (3.0, 3.0), (0, 0)),
        (1, (3.0, 3.2), (10, 39)),
        (12, (3.5, 3.7), (120, 219)),
        (75, (4.3, 4.5), (800, 1299)),
    ],
)
def test_rating_and_reviews_within_tier(count: int, rating_range, review_range) -> None:
    rating, reviews = generate_rating_and_reviews(count, seed="acme")
    assert rating_range[0] <= rating <= rating_range[1]
    assert review_range[0] <= reviews <= review_range[1]


def test_rating_is_stable_for_same_store_and_count() -> None:
    assert generate_rating_and_reviews(12, seed="acme") == generate_rating_and_reviews(12, seed="acme")
