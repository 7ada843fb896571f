"""Storage protocol shared by the registry, the propagator and search.

Two backends implement :class:`CatalogStore`: :class:`InMemoryStore` below and
``catalog.es_store.ElasticsearchStore``. The engine only speaks to the
protocol, so matching and ordering rules live in :class:`RecordCriteria` and
``catalog.ranking`` rather than in either backend.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol, Sequence

from .models import CanonicalEntity, CatalogRecord, EntityKind, Gender, PerfumerCredit
from .normalization import fold, matches_any, query_forms
from .ranking import EXACT_MATCH, NAME, RECORD_ID, SortKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerfumerMatch:
    """A credit matches when its original or its ``ru`` equals the given name.

    A credit without ``en`` has its ``ru`` as original name, the same way
    discovery reads it.
    """

    en: str | None = None
    ru: str | None = None

    def matches(self, credit: PerfumerCredit) -> bool:
        original = credit.en or credit.ru
        if self.en and original and fold(original) == fold(self.en):
            return True
        if self.ru and credit.ru and fold(credit.ru) == fold(self.ru):
            return True
        return False


@dataclass(frozen=True)
class RecordCriteria:
    """Filter over catalog records; every populated term is AND-ed.

    ``text`` holds query forms (see ``normalization.query_forms``) that are
    OR-ed as substrings against the record search keys. ``brand`` and ``note``
    are case-insensitive exact matches.
    """

    text: tuple[str, ...] = ()
    brand: str | None = None
    perfumer: PerfumerMatch | None = None
    note: str | None = None
    gender: Gender | None = None
    year: int | None = None

    def matches(self, record: CatalogRecord) -> bool:
        if self.text and not matches_any(self.text, record.search_keys()):
            return False
        if self.brand is not None and fold(record.brand) != fold(self.brand):
            return False
        if self.perfumer is not None and not any(self.perfumer.matches(c) for c in record.perfumers):
            return False
        if self.note is not None and fold(self.note) not in {fold(n) for n in record.notes.all()}:
            return False
        if self.gender is not None and record.gender != self.gender:
            return False
        if self.year is not None and record.releaseYear != self.year:
            return False
        return True

    def exact_match(self, record: CatalogRecord) -> bool:
        if not self.text:
            return False
        fields = {fold(value) for value in (record.name, record.nameRu, record.brand, record.brandRu) if value}
        return any(form in fields for form in self.text)


class CatalogStore(Protocol):
    def ping(self) -> bool: ...

    def get_entity(self, kind: EntityKind, entity_id: str) -> CanonicalEntity | None: ...

    def find_entity(
        self, kind: EntityKind, *, slug: str | None = None, original_name: str | None = None
    ) -> CanonicalEntity | None: ...

    def put_entity_if_absent(self, kind: EntityKind, entity: CanonicalEntity) -> tuple[CanonicalEntity, bool]: ...

    def save_entity(self, kind: EntityKind, entity: CanonicalEntity) -> None: ...

    def delete_entity(self, kind: EntityKind, entity_id: str) -> bool: ...

    def list_entities(
        self,
        kind: EntityKind,
        *,
        prefix: str | None = None,
        forms: Sequence[str] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> tuple[list[CanonicalEntity], int]: ...

    def get_record(self, record_id: str) -> CatalogRecord | None: ...

    def save_record(self, record: CatalogRecord) -> None: ...

    def scan_records(self, criteria: RecordCriteria | None = None) -> Iterator[CatalogRecord]: ...

    def find_records(
        self, criteria: RecordCriteria, keys: Sequence[SortKey], skip: int, limit: int
    ) -> tuple[list[CatalogRecord], int]: ...

    def bulk_save(self, records: Iterable[CatalogRecord]) -> int: ...

    def bulk_delete(self, record_ids: Iterable[str]) -> int: ...


def entity_matches(
    entity: CanonicalEntity, *, prefix: str | None, forms: Sequence[str], localized_prefix: bool = False
) -> bool:
    """``prefix`` looks at ``localizedName`` too only when ``localized_prefix`` is set."""
    names = [name for name in (entity.originalName, entity.localizedName) if name]
    initials = names if localized_prefix else [entity.originalName]
    if prefix is not None and not any(fold(name).startswith(fold(prefix)) for name in initials):
        return False
    if forms:
        keys = [key for name in names for key in query_forms(name)]
        if not matches_any(forms, keys):
            return False
    return True


def _sort_value(record: CatalogRecord, field: str, criteria: RecordCriteria):
    if field == EXACT_MATCH:
        return criteria.exact_match(record)
    if field == NAME:
        return fold(record.name)
    if field == RECORD_ID:
        return record.id
    return getattr(record, field)


def sort_records(
    records: Iterable[CatalogRecord], keys: Sequence[SortKey], criteria: RecordCriteria
) -> list[CatalogRecord]:
    """Multi-key sort with missing values last regardless of direction."""
    ordered = list(records)
    for key in reversed(keys):
        present = [r for r in ordered if _sort_value(r, key.field, criteria) is not None]
        missing = [r for r in ordered if _sort_value(r, key.field, criteria) is None]
        present.sort(key=lambda r: _sort_value(r, key.field, criteria), reverse=key.descending)
        ordered = present + missing
    return ordered


class InMemoryStore:
    """Process-local backend used by tests and the CLI's offline mode."""

    def __init__(
        self,
        records: Iterable[CatalogRecord] = (),
        entities: dict[EntityKind, Iterable[CanonicalEntity]] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, CatalogRecord] = {r.id: r.model_copy(deep=True) for r in records}
        self._entities: dict[EntityKind, dict[str, CanonicalEntity]] = {kind: {} for kind in EntityKind}
        for kind, items in (entities or {}).items():
            for entity in items:
                self._entities[kind][entity.id] = entity.model_copy()

    def ping(self) -> bool:
        return True

    # Registry -------------------------------------------------------------

    def get_entity(self, kind: EntityKind, entity_id: str) -> CanonicalEntity | None:
        with self._lock:
            entity = self._entities[kind].get(entity_id)
            return entity.model_copy() if entity else None

    def find_entity(
        self, kind: EntityKind, *, slug: str | None = None, original_name: str | None = None
    ) -> CanonicalEntity | None:
        with self._lock:
            return self._find_entity_locked(kind, slug=slug, original_name=original_name)

    def _find_entity_locked(
        self, kind: EntityKind, *, slug: str | None = None, original_name: str | None = None
    ) -> CanonicalEntity | None:
        for entity in self._entities[kind].values():
            if slug is not None and entity.slug == slug:
                return entity.model_copy()
            if original_name is not None and fold(entity.originalName) == fold(original_name):
                return entity.model_copy()
        return None

    def put_entity_if_absent(self, kind: EntityKind, entity: CanonicalEntity) -> tuple[CanonicalEntity, bool]:
        with self._lock:
            existing = self._entities[kind].get(entity.id) or self._find_entity_locked(
                kind, slug=entity.slug, original_name=entity.originalName
            )
            if existing is not None:
                return existing.model_copy(), False
            self._entities[kind][entity.id] = entity.model_copy()
            return entity.model_copy(), True

    def save_entity(self, kind: EntityKind, entity: CanonicalEntity) -> None:
        with self._lock:
            self._entities[kind][entity.id] = entity.model_copy()

    def delete_entity(self, kind: EntityKind, entity_id: str) -> bool:
        with self._lock:
            return self._entities[kind].pop(entity_id, None) is not None

    def list_entities(
        self,
        kind: EntityKind,
        *,
        prefix: str | None = None,
        forms: Sequence[str] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> tuple[list[CanonicalEntity], int]:
        with self._lock:
            matched = [
                e.model_copy()
                for e in self._entities[kind].values()
                if entity_matches(e, prefix=prefix, forms=forms, localized_prefix=kind is EntityKind.PERFUMER)
            ]
        matched.sort(key=lambda e: (fold(e.originalName), e.id))
        end = None if limit is None else skip + limit
        return matched[skip:end], len(matched)

    # Catalog --------------------------------------------------------------

    def get_record(self, record_id: str) -> CatalogRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def save_record(self, record: CatalogRecord) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def scan_records(self, criteria: RecordCriteria | None = None) -> Iterator[CatalogRecord]:
        with self._lock:
            snapshot = [r.model_copy(deep=True) for r in self._records.values()]
        for record in snapshot:
            if criteria is None or criteria.matches(record):
                yield record

    def find_records(
        self, criteria: RecordCriteria, keys: Sequence[SortKey], skip: int, limit: int
    ) -> tuple[list[CatalogRecord], int]:
        matched = list(self.scan_records(criteria))
        ordered = sort_records(matched, keys, criteria)
        return ordered[skip : skip + limit], len(matched)

    def bulk_save(self, records: Iterable[CatalogRecord]) -> int:
        saved = 0
        with self._lock:
            for record in records:
                self._records[record.id] = record.model_copy(deep=True)
                saved += 1
        return saved

    def bulk_delete(self, record_ids: Iterable[str]) -> int:
        deleted = 0
        with self._lock:
            for record_id in record_ids:
                if self._records.pop(record_id, None) is not None:
                    deleted += 1
        return deleted
