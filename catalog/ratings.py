"""Rating recompute consumed by the popularity sort."""
from __future__ import annotations

from statistics import fmean
from typing import Sequence

from .models import CatalogRecord, UserRating

CATEGORIES = ("scent", "longevity", "sillage", "packaging", "value")


def rating_value(ratings: Sequence[UserRating]) -> float:
    """Average each category across users, then scale the mean of those to 0-10."""
    if not ratings:
        return 0.0
    averages = [fmean(getattr(rating, category) for rating in ratings) for category in CATEGORIES]
    return round(fmean(averages) * 2, 2)


def apply_rating(record: CatalogRecord, rating: UserRating) -> CatalogRecord:
    """Replace the user's previous rating (if any) and refresh the aggregates."""
    ratings = [existing for existing in record.userRatings if existing.userId != rating.userId]
    ratings.append(rating)
    return record.model_copy(
        update={
            "userRatings": ratings,
            "ratingCount": len(ratings),
            "ratingValue": rating_value(ratings),
        }
    )
