"""
Purpose: Rating aggregation.
Folds a single 1-5 rating into an assistant's distribution and recomputes the
bucket-weighted mean. Pure functions; the catalog decides where the result lives.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .errors import RatingOutOfRangeError
from .models import AssistantStats, RatingDistribution, BUCKET_NAMES


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise RatingOutOfRangeError(rating)
    if rating not in BUCKET_NAMES:
        raise RatingOutOfRangeError(rating)
    return rating


def round_one_decimal(value: float) -> float:
    """Round half away from zero, so 4.25 -> 4.3 like a UI would display it."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def weighted_mean(ratings: RatingDistribution) -> float:
    total = ratings.total
    if total == 0:
        return 0.0
    return round_one_decimal(ratings.weighted_sum / total)


def fold_rating(stats: Optional[AssistantStats], rating: int) -> AssistantStats:
    """Return new stats with one more rating recorded; `stats` is left untouched."""
    rating = validate_rating(rating)
    stats = stats or AssistantStats()
    bucket = BUCKET_NAMES[rating]
    ratings = replace(stats.ratings, **{bucket: stats.ratings.count(rating) + 1})
    return AssistantStats(
        users=stats.users + 1,
        rating=weighted_mean(ratings),
        ratings=ratings,
    )
