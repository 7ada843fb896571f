"""Slug generation for canonical entities."""
from __future__ import annotations

import hashlib
import re

from .normalization import transliterate

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Map a display name to a lowercase, ASCII, hyphen-separated token.

    Names without any transliterable letters or digits fall back to a short
    SHA-1 digest of the stripped input, which is itself a valid slug.
    """
    slug = _NON_SLUG_RE.sub("-", transliterate(text)).strip("-")
    if slug:
        return slug
    return hashlib.sha1((text or "").strip().encode("utf-8")).hexdigest()[:12]


def is_slug(value: str | None) -> bool:
    return bool(value) and SLUG_PATTERN.match(value) is not None
