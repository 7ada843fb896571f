"""Elasticsearch backend of :class:`catalog.store.CatalogStore`.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` by the HTTP layer where necessary.
Client errors are re-raised as :class:`catalog.errors.StoreUnavailable`.
"""
from __future__ import annotations

import functools
import logging
from functools import lru_cache
from typing import Any, Callable, Iterable, Iterator, Sequence, TypeVar

from elasticsearch import Elasticsearch, helpers
from elasticsearch.exceptions import ApiError, ConflictError, NotFoundError, TransportError

from .config import Settings, settings
from .errors import StoreUnavailable
from .models import CanonicalEntity, CatalogRecord, EntityKind, Notes
from .normalization import fold, record_search_keys
from .ranking import EXACT_MATCH, NAME, RATING_COUNT, RATING_VALUE, RECORD_ID, RELEASE_YEAR, SortKey
from .store import RecordCriteria

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Fields compared verbatim (case-insensitively) for the relevance boost.
EXACT_FIELDS = ("name", "nameRu", "brand", "brandRu")
SORT_FIELDS = {
    NAME: "name.folded",
    RATING_COUNT: "ratingCount",
    RATING_VALUE: "ratingValue",
    RELEASE_YEAR: "releaseYear",
    RECORD_ID: "id",
}
_WILDCARD_SPECIALS = ("\\", "*", "?")


@lru_cache(maxsize=1)
def get_client() -> Elasticsearch:
    logger.info("Connecting to Elasticsearch at %s", settings.es_host)
    return Elasticsearch(settings.es_host)


def _guard(func: F) -> F:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (ApiError, TransportError) as exc:
            logger.error("Elasticsearch call %s failed: %s", func.__name__, exc)
            raise StoreUnavailable(f"Elasticsearch call failed: {exc}", {"operation": func.__name__}) from exc

    return wrapper  # type: ignore[return-value]


def escape_wildcard(value: str) -> str:
    for special in _WILDCARD_SPECIALS:
        value = value.replace(special, "\\" + special)
    return value


def _any_of(clauses: list[dict]) -> dict:
    return {"bool": {"should": clauses, "minimum_should_match": 1}}


def _contains_any(field: str, forms: Sequence[str]) -> dict:
    return _any_of([{"wildcard": {field: {"value": f"*{escape_wildcard(form)}*"}}} for form in forms])


def build_record_query(criteria: RecordCriteria | None) -> dict:
    """Translate :class:`RecordCriteria` into a bool query.

    Filters never score. When a text term is present, a constant-score clause
    scores 1 for records whose name or brand equals a query form, which is the
    value the ``relevance`` policy sorts on.
    """
    if criteria is None:
        return {"match_all": {}}

    filters: list[dict] = []
    if criteria.text:
        filters.append(_contains_any("searchKeys", criteria.text))
    if criteria.brand is not None:
        filters.append({"term": {"brand.folded": fold(criteria.brand)}})
    if criteria.perfumer is not None:
        credit_terms = []
        if criteria.perfumer.en:
            original = fold(criteria.perfumer.en)
            credit_terms.append({"term": {"perfumers.en.folded": original}})
            credit_terms.append(
                {
                    "bool": {
                        "filter": [{"term": {"perfumers.ru.folded": original}}],
                        "must_not": [{"exists": {"field": "perfumers.en"}}],
                    }
                }
            )
        if criteria.perfumer.ru:
            credit_terms.append({"term": {"perfumers.ru.folded": fold(criteria.perfumer.ru)}})
        filters.append({"nested": {"path": "perfumers", "query": _any_of(credit_terms)}})
    if criteria.note is not None:
        note = fold(criteria.note)
        filters.append(_any_of([{"term": {f"notes.{category}.folded": note}} for category in Notes.CATEGORIES]))
    if criteria.gender is not None:
        filters.append({"term": {"gender": criteria.gender.value}})
    if criteria.year is not None:
        filters.append({"term": {"releaseYear": criteria.year}})

    query: dict[str, Any] = {"bool": {"filter": filters}}
    if criteria.text:
        exact = _any_of([{"terms": {f"{field}.folded": list(criteria.text)}} for field in EXACT_FIELDS])
        query["bool"]["should"] = [{"constant_score": {"filter": exact, "boost": 1.0}}]
    return query


def build_sort(keys: Sequence[SortKey]) -> list[dict]:
    clauses: list[dict] = []
    for key in keys:
        order = "desc" if key.descending else "asc"
        if key.field == EXACT_MATCH:
            clauses.append({"_score": {"order": order}})
        else:
            clauses.append({SORT_FIELDS[key.field]: {"order": order, "missing": "_last"}})
    return clauses


def build_entity_query(prefix: str | None, forms: Sequence[str], localized_prefix: bool = False) -> dict:
    filters: list[dict] = []
    if prefix is not None:
        letter = fold(prefix)
        fields = ("originalName", "localizedName") if localized_prefix else ("originalName",)
        filters.append(_any_of([{"prefix": {f"{field}.folded": letter}} for field in fields]))
    if forms:
        filters.append(_contains_any("searchKeys", forms))
    if not filters:
        return {"match_all": {}}
    return {"bool": {"filter": filters}}


def _entity_document(entity: CanonicalEntity) -> dict:
    document = entity.model_dump(mode="json")
    document["searchKeys"] = record_search_keys((entity.originalName, entity.localizedName))
    return document


def _entity_from_hit(hit: dict) -> CanonicalEntity:
    return CanonicalEntity.model_validate(hit["_source"])


class ElasticsearchStore:
    """One index per entity kind plus the perfumes index.

    ``refresh`` is applied to every write so that a registry update is visible
    before propagation reads the catalog.
    """

    def __init__(self, es: Elasticsearch, config: Settings = settings, refresh: str | bool = "wait_for") -> None:
        self.es = es
        self.config = config
        self.refresh = refresh

    def _entity_index(self, kind: EntityKind) -> str:
        return self.config.entity_index(kind.value)

    @_guard
    def ping(self) -> bool:
        return bool(self.es.ping())

    # Registry -------------------------------------------------------------

    @_guard
    def get_entity(self, kind: EntityKind, entity_id: str) -> CanonicalEntity | None:
        try:
            response = self.es.get(index=self._entity_index(kind), id=entity_id)
        except NotFoundError:
            return None
        return _entity_from_hit(response)

    @_guard
    def find_entity(
        self, kind: EntityKind, *, slug: str | None = None, original_name: str | None = None
    ) -> CanonicalEntity | None:
        clauses = []
        if slug is not None:
            clauses.append({"term": {"slug": slug}})
        if original_name is not None:
            clauses.append({"term": {"originalName.folded": fold(original_name)}})
        if not clauses:
            return None
        response = self.es.search(index=self._entity_index(kind), query=_any_of(clauses), size=1)
        hits = response["hits"]["hits"]
        return _entity_from_hit(hits[0]) if hits else None

    @_guard
    def put_entity_if_absent(self, kind: EntityKind, entity: CanonicalEntity) -> tuple[CanonicalEntity, bool]:
        existing = self.find_entity(kind, slug=entity.slug, original_name=entity.originalName)
        if existing is not None:
            return existing, False
        try:
            self.es.create(
                index=self._entity_index(kind),
                id=entity.id,
                document=_entity_document(entity),
                refresh=self.refresh,
            )
        except ConflictError:
            # Lost the race on _id; the winner's copy is the answer.
            winner = self.get_entity(kind, entity.id)
            logger.debug("put_if_absent lost race kind=%s id=%s", kind.value, entity.id)
            return (winner or entity), False
        return entity, True

    @_guard
    def save_entity(self, kind: EntityKind, entity: CanonicalEntity) -> None:
        self.es.index(
            index=self._entity_index(kind),
            id=entity.id,
            document=_entity_document(entity),
            refresh=self.refresh,
        )

    @_guard
    def delete_entity(self, kind: EntityKind, entity_id: str) -> bool:
        try:
            self.es.delete(index=self._entity_index(kind), id=entity_id, refresh=self.refresh)
        except NotFoundError:
            return False
        return True

    @_guard
    def list_entities(
        self,
        kind: EntityKind,
        *,
        prefix: str | None = None,
        forms: Sequence[str] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> tuple[list[CanonicalEntity], int]:
        query = build_entity_query(prefix, forms, localized_prefix=kind is EntityKind.PERFUMER)
        index = self._entity_index(kind)
        if limit is None:
            hits = helpers.scan(self.es, index=index, query={"query": query})
            entities = sorted((_entity_from_hit(hit) for hit in hits), key=lambda e: (fold(e.originalName), e.id))
            return entities[skip:], len(entities)
        response = self.es.search(
            index=index,
            query=query,
            sort=[{"originalName.folded": {"order": "asc"}}, {"id": {"order": "asc"}}],
            from_=skip,
            size=limit,
            track_total_hits=True,
        )
        hits = response["hits"]
        return [_entity_from_hit(hit) for hit in hits["hits"]], hits["total"]["value"]

    # Catalog --------------------------------------------------------------

    @_guard
    def get_record(self, record_id: str) -> CatalogRecord | None:
        try:
            response = self.es.get(index=self.config.perfumes_index, id=record_id)
        except NotFoundError:
            return None
        return CatalogRecord.from_document(response["_source"])

    @_guard
    def save_record(self, record: CatalogRecord) -> None:
        self.es.index(
            index=self.config.perfumes_index,
            id=record.id,
            document=record.to_document(),
            refresh=self.refresh,
        )

    def scan_records(self, criteria: RecordCriteria | None = None) -> Iterator[CatalogRecord]:
        try:
            for hit in helpers.scan(
                self.es,
                index=self.config.perfumes_index,
                query={"query": build_record_query(criteria)},
            ):
                yield CatalogRecord.from_document(hit["_source"])
        except (ApiError, TransportError) as exc:
            logger.error("Elasticsearch scan failed: %s", exc)
            raise StoreUnavailable(f"Elasticsearch scan failed: {exc}", {"operation": "scan_records"}) from exc

    @_guard
    def find_records(
        self, criteria: RecordCriteria, keys: Sequence[SortKey], skip: int, limit: int
    ) -> tuple[list[CatalogRecord], int]:
        query = build_record_query(criteria)
        response = self.es.search(
            index=self.config.perfumes_index,
            query=query,
            sort=build_sort(keys),
            from_=skip,
            size=limit,
            track_total_hits=True,
        )
        hits = response["hits"]
        records = [CatalogRecord.from_document(hit["_source"]) for hit in hits["hits"]]
        logger.debug("find_records query=%s hits=%s total=%s", query, len(records), hits["total"]["value"])
        return records, hits["total"]["value"]

    def _bulk(self, actions: list[dict]) -> int:
        if not actions:
            return 0
        success, errors = helpers.bulk(self.es, actions, raise_on_error=False, refresh=self.refresh)
        if errors:
            logger.warning("Bulk write confirmed %s of %s actions; first error: %s", success, len(actions), errors[0])
        return success

    @_guard
    def bulk_save(self, records: Iterable[CatalogRecord]) -> int:
        actions = [
            {"_op_type": "index", "_index": self.config.perfumes_index, "_id": r.id, "_source": r.to_document()}
            for r in records
        ]
        return self._bulk(actions)

    @_guard
    def bulk_delete(self, record_ids: Iterable[str]) -> int:
        actions = [
            {"_op_type": "delete", "_index": self.config.perfumes_index, "_id": record_id}
            for record_id in record_ids
        ]
        return self._bulk(actions)
