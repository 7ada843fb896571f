"""Canonical entity registry: brands, perfumers and notes by slug.

The registry is populated by scanning the catalog (:meth:`discover_all`) and
is otherwise a plain lookup surface. Writes that must reach the catalog
(rename, cascade delete, merge) live in ``catalog.propagation``.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Iterator

from .config import Settings, settings
from .errors import CatalogError, Conflict, InvalidInput, NotFound
from .models import CanonicalEntity, CatalogRecord, DuplicateGroup, EntityKind, Page
from .normalization import phonetic_key, query_forms
from .slugs import slugify
from .store import CatalogStore

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def observed_names(kind: EntityKind, record: CatalogRecord) -> Iterator[tuple[str, str | None]]:
    """Yield ``(original, localized)`` pairs a record denormalizes for ``kind``."""
    if kind is EntityKind.BRAND:
        brand = _clean(record.brand)
        if brand:
            yield brand, _clean(record.brandRu)
    elif kind is EntityKind.PERFUMER:
        for credit in record.perfumers:
            en, ru = _clean(credit.en), _clean(credit.ru)
            original = en or ru
            if original:
                yield original, ru if en else None
    else:
        for note in record.notes.all():
            name = _clean(note)
            if name:
                yield name, None


def validate_paging(page: int, limit: int, config: Settings = settings) -> int:
    """Return the offset for ``page``/``limit`` or raise :class:`InvalidInput`."""
    if page < 1:
        raise InvalidInput("page must be >= 1", {"page": page})
    if limit < 1 or limit > config.max_page_size:
        raise InvalidInput(
            f"limit must be between 1 and {config.max_page_size}",
            {"limit": limit},
        )
    return (page - 1) * limit


class CanonicalRegistry:
    def __init__(self, store: CatalogStore, config: Settings = settings) -> None:
        self.store = store
        self.config = config

    def discover_all(self, kind: EntityKind) -> list[CanonicalEntity]:
        """Scan the catalog and put every distinct name into the registry.

        Existing entities are never overwritten; the stored copy is what gets
        returned for them. A failure on one name is logged and the scan goes
        on. Records written while the scan runs may or may not be seen.
        """
        candidates: dict[str, CanonicalEntity] = {}
        scanned = 0
        for record in self.store.scan_records():
            scanned += 1
            for original, localized in observed_names(kind, record):
                slug = slugify(original)
                if slug in candidates:
                    continue
                candidates[slug] = CanonicalEntity(
                    id=slug, originalName=original, localizedName=localized, slug=slug
                )

        discovered: list[CanonicalEntity] = []
        inserted = 0
        for candidate in candidates.values():
            try:
                stored, created = self.store.put_entity_if_absent(kind, candidate)
            except CatalogError as exc:
                logger.warning(
                    "discover kind=%s failed to store %r: %s", kind.value, candidate.originalName, exc.message
                )
                continue
            inserted += int(created)
            discovered.append(stored)
        logger.info(
            "discover kind=%s scanned=%s distinct=%s inserted=%s",
            kind.value,
            scanned,
            len(candidates),
            inserted,
        )
        return discovered

    def find_by_slug(self, kind: EntityKind, slug: str | None) -> CanonicalEntity:
        if not slug or not slug.strip():
            raise InvalidInput(f"{kind.value} slug is required")
        entity = self.store.find_entity(kind, slug=slug.strip())
        if entity is None:
            raise NotFound(f"{kind.value} not found", {"slug": slug})
        return entity

    def find_by_initial(self, kind: EntityKind, letter: str) -> list[CanonicalEntity]:
        letter = (letter or "").strip()
        if len(letter) != 1:
            raise InvalidInput("initial must be a single character", {"initial": letter})
        entities, _total = self.store.list_entities(kind, prefix=letter)
        return entities

    def search(self, kind: EntityKind, query: str | None, page: int = 1, limit: int | None = None) -> Page[CanonicalEntity]:
        limit = limit or self.config.default_page_size
        skip = validate_paging(page, limit, self.config)
        forms = query_forms(query)
        if not forms:
            raise InvalidInput("query parameter is required")
        entities, total = self.store.list_entities(kind, forms=forms, skip=skip, limit=limit)
        logger.info("registry search kind=%s q=%r forms=%s total=%s", kind.value, query, forms, total)
        return Page[CanonicalEntity].build(entities, page, limit, total)

    def create(self, kind: EntityKind, original_name: str, localized_name: str | None = None) -> CanonicalEntity:
        original = _clean(original_name)
        if not original:
            raise InvalidInput("originalName is required")
        if self.store.find_entity(kind, original_name=original) is not None:
            raise Conflict(f"{kind.value} {original!r} already exists", {"originalName": original})
        slug = slugify(original)
        entity = CanonicalEntity(id=slug, originalName=original, localizedName=_clean(localized_name), slug=slug)
        stored, created = self.store.put_entity_if_absent(kind, entity)
        if not created:
            raise Conflict(
                f"{kind.value} slug {slug!r} is taken by {stored.originalName!r}",
                {"slug": slug, "existingId": stored.id},
            )
        logger.info("registry create kind=%s id=%s", kind.value, stored.id)
        return stored

    def get_by_id(self, kind: EntityKind, entity_id: str) -> CanonicalEntity:
        entity = self.store.get_entity(kind, entity_id)
        if entity is None:
            raise NotFound(f"{kind.value} not found", {"id": entity_id})
        return entity

    def delete_by_id(self, kind: EntityKind, entity_id: str) -> CanonicalEntity:
        """Remove the entity from the registry only; the catalog is untouched."""
        entity = self.get_by_id(kind, entity_id)
        if not self.store.delete_entity(kind, entity_id):
            raise NotFound(f"{kind.value} not found", {"id": entity_id})
        logger.info("registry delete kind=%s id=%s", kind.value, entity_id)
        return entity

    def find_duplicates(self, kind: EntityKind) -> list[DuplicateGroup]:
        """Group entities whose names sound alike; candidates for a merge."""
        entities, _total = self.store.list_entities(kind)
        return group_by_phonetic_key(entities)


def group_by_phonetic_key(entities: Iterable[CanonicalEntity]) -> list[DuplicateGroup]:
    groups: dict[str, list[CanonicalEntity]] = defaultdict(list)
    for entity in entities:
        key = phonetic_key(entity.originalName)
        if key:
            groups[key].append(entity)
    return [
        DuplicateGroup(key=key, entities=members)
        for key, members in sorted(groups.items())
        if len(members) > 1
    ]
