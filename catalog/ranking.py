"""Sort policies and the single function that turns them into sort keys.

Both storage backends consume the :class:`SortKey` list produced here: the
in-memory store sorts Python objects with it, the Elasticsearch store turns it
into a ``sort`` clause. Field names are logical; ``EXACT_MATCH`` is the boolean
relevance boost computed per candidate.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

NAME = "name"
RATING_COUNT = "ratingCount"
RATING_VALUE = "ratingValue"
RELEASE_YEAR = "releaseYear"
EXACT_MATCH = "_exact"
RECORD_ID = "id"


class SortPolicy(str, Enum):
    A_Z = "A-Z"
    Z_A = "Z-A"
    POPULAR = "popular"
    UNPOPULAR = "unpopular"
    NEWEST = "newest"
    RELEVANCE = "relevance"


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


_POLICY_KEYS: dict[SortPolicy, tuple[SortKey, ...]] = {
    SortPolicy.A_Z: (SortKey(NAME),),
    SortPolicy.Z_A: (SortKey(NAME, descending=True),),
    SortPolicy.POPULAR: (SortKey(RATING_COUNT, True), SortKey(RATING_VALUE, True)),
    SortPolicy.UNPOPULAR: (SortKey(RATING_COUNT), SortKey(RATING_VALUE)),
    SortPolicy.NEWEST: (SortKey(RELEASE_YEAR, True),),
}

DEFAULT_FALLBACK = SortPolicy.POPULAR


def sort_keys(policy: SortPolicy, then_by: SortPolicy | None = None) -> list[SortKey]:
    """Resolve a policy into an ordered list of sort keys.

    ``relevance`` puts exact matches first and falls back to ``then_by``
    (``popular`` when omitted). Every ordering ends on the record id so that
    offset pagination never repeats or skips a record.
    """
    keys: list[SortKey] = []
    if policy is SortPolicy.RELEVANCE:
        fallback = then_by if then_by not in (None, SortPolicy.RELEVANCE) else DEFAULT_FALLBACK
        keys.append(SortKey(EXACT_MATCH, descending=True))
        keys.extend(_POLICY_KEYS[fallback])
    else:
        keys.extend(_POLICY_KEYS[policy])
    keys.append(SortKey(RECORD_ID))
    return keys
