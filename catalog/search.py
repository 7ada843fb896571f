"""Catalog search over the denormalized brand, perfumer and note fields."""
from __future__ import annotations

import logging
from time import perf_counter

from .config import Settings, settings
from .errors import NotFound
from .models import CatalogRecord, EntityKind, Page, SearchFilters, UserRating
from .normalization import query_forms
from .ranking import SortPolicy, sort_keys
from .ratings import apply_rating
from .registry import CanonicalRegistry, validate_paging
from .store import CatalogStore, PerfumerMatch, RecordCriteria

logger = logging.getLogger(__name__)


class CatalogSearch:
    def __init__(
        self,
        store: CatalogStore,
        registry: CanonicalRegistry | None = None,
        config: Settings = settings,
    ) -> None:
        self.store = store
        self.registry = registry or CanonicalRegistry(store, config)
        self.config = config

    def build_criteria(self, filters: SearchFilters) -> RecordCriteria:
        """Resolve slugs and ids through the registry and collect query forms.

        Raises :class:`NotFound` when a brand/perfumer slug or a note id is
        unknown.
        """
        brand = perfumer = note = None
        if filters.brand:
            brand = self.registry.find_by_slug(EntityKind.BRAND, filters.brand).originalName
        if filters.perfumer:
            entity = self.registry.find_by_slug(EntityKind.PERFUMER, filters.perfumer)
            perfumer = PerfumerMatch(en=entity.originalName, ru=entity.localizedName)
        if filters.note:
            note = self.registry.get_by_id(EntityKind.NOTE, filters.note).originalName
        return RecordCriteria(
            text=query_forms(filters.query),
            brand=brand,
            perfumer=perfumer,
            note=note,
            gender=filters.gender,
            year=filters.year,
        )

    def search(
        self,
        filters: SearchFilters,
        sort: SortPolicy = SortPolicy.RELEVANCE,
        page: int = 1,
        limit: int | None = None,
        then_by: SortPolicy | None = None,
    ) -> Page[CatalogRecord]:
        """Filter, rank and paginate catalog records.

        An empty result is an empty page, not an error. ``then_by`` is the
        secondary ordering used by ``relevance``.
        """
        limit = limit or self.config.default_page_size
        skip = validate_paging(page, limit, self.config)
        t0 = perf_counter()
        criteria = self.build_criteria(filters)
        keys = sort_keys(sort, then_by)
        records, total = self.store.find_records(criteria, keys, skip, limit)
        took_ms = (perf_counter() - t0) * 1000
        logger.info(
            "catalog search q=%r forms=%s brand=%r perfumer=%r note=%r sort=%s page=%s hits=%s total=%s took=%.2fms",
            filters.query,
            criteria.text,
            criteria.brand,
            criteria.perfumer,
            criteria.note,
            sort.value,
            page,
            len(records),
            total,
            took_ms,
        )
        return Page[CatalogRecord].build(records, page, limit, total)

    def rate(self, record_id: str, rating: UserRating) -> CatalogRecord:
        """Store a user's rating and refresh ``ratingCount``/``ratingValue``."""
        record = self.store.get_record(record_id)
        if record is None:
            raise NotFound("perfume not found", {"id": record_id})
        updated = apply_rating(record, rating)
        self.store.save_record(updated)
        logger.info(
            "rate id=%s user=%s count=%s value=%s", record_id, rating.userId, updated.ratingCount, updated.ratingValue
        )
        return updated
