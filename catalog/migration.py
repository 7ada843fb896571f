"""Conversion of legacy perfume documents into :class:`CatalogRecord`.

Legacy exports keep perfumers in two parallel arrays (``perfumers_en`` and
``perfumers``/``perfumers_ru``) whose only link is the index. Nothing ever
checked that they stay the same length, so the pairing step needs an explicit
policy for mismatches instead of a guess.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Sequence

from .models import CatalogRecord, Gender, Notes, PerfumerCredit, UserRating

logger = logging.getLogger(__name__)

LEGACY_NOTE_FIELDS = {
    "top": "top_notes",
    "heart": "heart_notes",
    "base": "base_notes",
    "additional": "additional_notes",
}
GENDER_ALIASES = {
    "male": Gender.MALE,
    "men": Gender.MALE,
    "мужской": Gender.MALE,
    "female": Gender.FEMALE,
    "women": Gender.FEMALE,
    "женский": Gender.FEMALE,
    "unisex": Gender.UNISEX,
    "унисекс": Gender.UNISEX,
}


class MismatchPolicy(str, Enum):
    TRUNCATE = "truncate"  # keep only the positions both arrays have
    PAD = "pad"  # keep everything, missing side stays empty
    FLAG = "flag"  # pad, and mark the record for manual review


def pair_credits(
    en: Sequence[str] | None, ru: Sequence[str] | None, policy: MismatchPolicy = MismatchPolicy.FLAG
) -> tuple[list[PerfumerCredit], bool]:
    """Zip the parallel arrays into credits; returns ``(credits, needs_review)``."""
    en = list(en or [])
    ru = list(ru or [])
    mismatched = len(en) != len(ru)
    size = min(len(en), len(ru)) if mismatched and policy is MismatchPolicy.TRUNCATE else max(len(en), len(ru))
    credits = [
        PerfumerCredit(
            en=(en[i] or None) if i < len(en) else None,
            ru=(ru[i] or None) if i < len(ru) else None,
        )
        for i in range(size)
    ]
    return credits, mismatched and policy is MismatchPolicy.FLAG


def _legacy_id(document: dict[str, Any]) -> str:
    raw = document.get("perfume_id") or document.get("id") or document.get("_id")
    if isinstance(raw, dict):
        raw = raw.get("$oid")
    if not raw:
        raise ValueError("legacy document has no perfume_id/_id")
    return str(raw)


def _gender(value: Any) -> Gender | None:
    if not value:
        return None
    return GENDER_ALIASES.get(str(value).strip().lower())


def _user_ratings(items: Sequence[dict[str, Any]] | None) -> list[UserRating]:
    ratings = []
    for item in items or []:
        ratings.append(
            UserRating(
                userId=str(item.get("userId")),
                scent=item.get("scent", item.get("smell", 0)),
                longevity=item.get("longevity", 0),
                sillage=item.get("sillage", 0),
                packaging=item.get("packaging", item.get("bottle", 0)),
                value=item.get("value", item.get("priceValue", 0)),
            )
        )
    return ratings


def record_from_legacy(document: dict[str, Any], policy: MismatchPolicy = MismatchPolicy.FLAG) -> CatalogRecord:
    """Map one legacy document; already-migrated documents pass through."""
    raw_perfumers = document.get("perfumers") or []
    if raw_perfumers and isinstance(raw_perfumers[0], dict):
        return CatalogRecord.from_document(document)

    record_id = _legacy_id(document)
    credits, needs_review = pair_credits(
        document.get("perfumers_en"),
        document.get("perfumers_ru", raw_perfumers),
        policy,
    )
    if needs_review:
        logger.warning(
            "perfume %s: perfumers_en has %s entries, localized list has %s; flagged for review",
            record_id,
            len(document.get("perfumers_en") or []),
            len(document.get("perfumers_ru", raw_perfumers) or []),
        )
    legacy_notes = document.get("notes") or {}
    notes = Notes(
        **{
            category: list(legacy_notes.get(legacy, legacy_notes.get(category)) or [])
            for category, legacy in LEGACY_NOTE_FIELDS.items()
        }
    )
    return CatalogRecord(
        id=record_id,
        name=document.get("name") or "",
        nameRu=document.get("name_ru"),
        brand=document.get("brand") or "",
        brandRu=document.get("brand_ru"),
        releaseYear=document.get("release_year") or None,
        gender=_gender(document.get("gender")),
        perfumers=credits,
        notes=notes,
        ratingCount=document.get("rating_count") or 0,
        ratingValue=document.get("rating_value") or 0.0,
        userRatings=_user_ratings(document.get("user_ratings")),
        needsReview=needs_review,
    )
