"""Text normalization helpers shared by discovery, propagation and search.

Two independent, composable operations carry the matching rules:

1) :func:`normalize` decomposes Unicode text and drops combining marks so that
   ``"Hermès"`` and ``"Hermes"`` compare equal.
2) :func:`transliterate` lowercases the text, maps Cyrillic letters to a Latin
   phonetic approximation and folds anything else to ASCII with ``unidecode``,
   so ``"Диор"`` lines up with ``"dior"``.

Queries are always matched through :func:`query_forms`, the union of the raw,
normalized and transliterated spellings. Records carry the same forms of their
names in ``searchKeys`` (see :func:`record_search_keys`).
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable

from metaphone import doublemetaphone
from unidecode import unidecode

logger = logging.getLogger(__name__)

CYRILLIC_PATTERN = re.compile(r"[А-Яа-яЁё]")
# After transliteration we keep only Latin letters/digits/spaces for metaphone.
_ASCII_ALNUM_SPACE_RE = re.compile(r"[^0-9a-zA-Z ]+")

# Russian -> Latin. Not exhaustive, covers the letters seen in brand and
# perfumer names; everything else goes through unidecode.
RU_TO_LATIN = {
    "а": "a",
    "б": "b",
    "в": "v",
    "г": "g",
    "д": "d",
    "е": "e",
    "ё": "e",
    "ж": "zh",
    "з": "z",
    "и": "i",
    "й": "y",
    "к": "k",
    "л": "l",
    "м": "m",
    "н": "n",
    "о": "o",
    "п": "p",
    "р": "r",
    "с": "s",
    "т": "t",
    "у": "u",
    "ф": "f",
    "х": "h",
    "ц": "ts",
    "ч": "ch",
    "ш": "sh",
    "щ": "sch",
    "ъ": "",
    "ы": "y",
    "ь": "",
    "э": "e",
    "ю": "yu",
    "я": "ya",
}


def fold(text: str | None) -> str:
    """Case-folding used for every case-insensitive equality check."""
    return (text or "").strip().lower()


def normalize(text: str | None) -> str:
    """Strip diacritics: NFD-decompose and drop combining marks."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def transliterate(text: str | None) -> str:
    """Render text in lowercase ASCII, Cyrillic first through ``RU_TO_LATIN``.

    The output is ASCII-only and lowercase, so a second pass is a no-op.
    """
    if not text:
        return ""
    lowered = text.lower()
    if CYRILLIC_PATTERN.search(lowered):
        lowered = "".join(RU_TO_LATIN.get(ch, ch) for ch in lowered)
    return unidecode(lowered).lower()


def query_forms(text: str | None) -> tuple[str, ...]:
    """Return the de-duplicated, non-empty matching forms of ``text``.

    The raw folded spelling stays in the set so that Cyrillic letters which
    decompose under NFD (``й``, ``ё``) still match stored names verbatim.
    """
    forms: list[str] = []
    for candidate in (fold(text), fold(normalize(text)), fold(transliterate(text))):
        if candidate and candidate not in forms:
            forms.append(candidate)
    logger.debug("query_forms raw=%r forms=%s", text, forms)
    return tuple(forms)


def record_search_keys(values: Iterable[str | None]) -> list[str]:
    """Collect the matching forms of every non-empty value."""
    keys: list[str] = []
    for value in values:
        for form in query_forms(value):
            if form not in keys:
                keys.append(form)
    return keys


def matches_any(forms: Iterable[str], keys: Iterable[str]) -> bool:
    """Substring test of any query form against any search key."""
    key_list = list(keys)
    return any(form in key for form in forms for key in key_list)


def phonetic_key(text: str | None) -> str:
    """Double-metaphone code of the transliterated text.

    Used to spot registry entries that are the same name spelled in different
    scripts or with different diacritics. Returns an empty string when the text
    has no Latin letters after transliteration.
    """
    ascii_only = _ASCII_ALNUM_SPACE_RE.sub(" ", transliterate(text))
    codes: list[str] = []
    for token in ascii_only.split():
        primary, _secondary = doublemetaphone(token)
        if primary:
            codes.append(primary)
    return " ".join(codes)
