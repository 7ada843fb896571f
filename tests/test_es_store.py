"""Elasticsearch backend against a mocked client."""
from unittest.mock import MagicMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch.exceptions import ConflictError, NotFoundError

from catalog.errors import StoreUnavailable
from catalog.es_store import (
    ElasticsearchStore,
    build_entity_query,
    build_record_query,
    build_sort,
    escape_wildcard,
)
from catalog.models import CanonicalEntity, CatalogRecord, EntityKind
from catalog.ranking import SortPolicy, sort_keys
from catalog.store import PerfumerMatch, RecordCriteria

DIOR = CanonicalEntity(id="dior", originalName="Dior", localizedName="Диор", slug="dior")


def api_error(cls, status):
    return cls(message=cls.__name__, meta=MagicMock(status=status), body={})


def search_response(sources, total=None):
    return {
        "hits": {
            "hits": [{"_source": source} for source in sources],
            "total": {"value": len(sources) if total is None else total},
        }
    }


@pytest.fixture
def es():
    client = MagicMock()
    client.search.return_value = search_response([])
    return client


@pytest.fixture
def es_store(es):
    return ElasticsearchStore(es, refresh=False)


class TestQueryBuilding:
    def test_match_all_without_criteria(self):
        assert build_record_query(None) == {"match_all": {}}

    def test_text_adds_substring_filter_and_exact_boost(self):
        query = build_record_query(RecordCriteria(text=("dior",)))

        wildcard = query["bool"]["filter"][0]["bool"]["should"][0]
        assert wildcard == {"wildcard": {"searchKeys": {"value": "*dior*"}}}
        boost = query["bool"]["should"][0]["constant_score"]
        assert {"terms": {"brand.folded": ["dior"]}} in boost["filter"]["bool"]["should"]

    def test_reference_filters(self):
        criteria = RecordCriteria(brand="Dior", perfumer=PerfumerMatch(en="Francois Demachy"), note="Bergamot")
        filters = build_record_query(criteria)["bool"]["filter"]

        assert filters[0] == {"term": {"brand.folded": "dior"}}
        assert filters[1]["nested"]["path"] == "perfumers"
        assert {"term": {"notes.additional.folded": "bergamot"}} in filters[2]["bool"]["should"]
        assert "should" not in build_record_query(criteria)["bool"]

    def test_perfumer_original_also_matches_ru_only_credits(self):
        nested = build_record_query(RecordCriteria(perfumer=PerfumerMatch(en="Жан-Луи Сьюзак")))["bool"]["filter"][0]

        clauses = nested["nested"]["query"]["bool"]["should"]
        assert {"term": {"perfumers.en.folded": "жан-луи сьюзак"}} in clauses
        assert {
            "bool": {
                "filter": [{"term": {"perfumers.ru.folded": "жан-луи сьюзак"}}],
                "must_not": [{"exists": {"field": "perfumers.en"}}],
            }
        } in clauses

    def test_initial_prefix_reads_localized_name_only_when_asked(self):
        brand = build_entity_query("Д", ())["bool"]["filter"][0]["bool"]["should"]
        perfumer = build_entity_query("Ж", (), localized_prefix=True)["bool"]["filter"][0]["bool"]["should"]

        assert brand == [{"prefix": {"originalName.folded": "д"}}]
        assert {"prefix": {"localizedName.folded": "ж"}} in perfumer

    def test_wildcard_specials_are_escaped(self):
        assert escape_wildcard("a*b?c\\") == "a\\*b\\?c\\\\"

    def test_relevance_sorts_on_score_then_fallback(self):
        assert build_sort(sort_keys(SortPolicy.RELEVANCE)) == [
            {"_score": {"order": "desc"}},
            {"ratingCount": {"order": "desc", "missing": "_last"}},
            {"ratingValue": {"order": "desc", "missing": "_last"}},
            {"id": {"order": "asc", "missing": "_last"}},
        ]

    def test_name_sorts_on_folded_subfield(self):
        assert build_sort(sort_keys(SortPolicy.Z_A))[0] == {"name.folded": {"order": "desc", "missing": "_last"}}


class TestRegistry:
    def test_get_entity_missing(self, es, es_store):
        es.get.side_effect = api_error(NotFoundError, 404)
        assert es_store.get_entity(EntityKind.BRAND, "dior") is None
        es.get.assert_called_once_with(index="parfumo-brands", id="dior")

    def test_put_if_absent_creates(self, es, es_store):
        stored, created = es_store.put_entity_if_absent(EntityKind.BRAND, DIOR)

        assert created is True
        assert stored == DIOR
        kwargs = es.create.call_args.kwargs
        assert kwargs["id"] == "dior"
        assert kwargs["document"]["searchKeys"] == ["dior", "диор"]

    def test_put_if_absent_returns_existing(self, es, es_store):
        es.search.return_value = search_response([DIOR.model_dump()])

        stored, created = es_store.put_entity_if_absent(EntityKind.BRAND, DIOR.model_copy(update={"localizedName": None}))

        assert created is False
        assert stored.localizedName == "Диор"
        es.create.assert_not_called()

    def test_put_if_absent_lost_race(self, es, es_store):
        es.create.side_effect = api_error(ConflictError, 409)
        es.get.return_value = {"_source": DIOR.model_dump()}

        stored, created = es_store.put_entity_if_absent(EntityKind.BRAND, DIOR.model_copy(update={"localizedName": None}))

        assert created is False
        assert stored == DIOR

    def test_delete_missing_entity(self, es, es_store):
        es.delete.side_effect = api_error(NotFoundError, 404)
        assert es_store.delete_entity(EntityKind.NOTE, "oud") is False

    def test_paged_listing_uses_total_hits(self, es, es_store):
        es.search.return_value = search_response([DIOR.model_dump()], total=7)

        entities, total = es_store.list_entities(EntityKind.BRAND, prefix="D", skip=5, limit=5)

        assert entities == [DIOR]
        assert total == 7
        assert es.search.call_args.kwargs["from_"] == 5


class TestCatalog:
    def test_find_records(self, es, es_store):
        record = CatalogRecord(id="p1", name="Sauvage", brand="Dior")
        es.search.return_value = search_response([record.to_document()], total=12)

        records, total = es_store.find_records(RecordCriteria(), sort_keys(SortPolicy.NEWEST), 10, 5)

        assert records == [record]
        assert total == 12
        kwargs = es.search.call_args.kwargs
        assert kwargs["index"] == "parfumo-perfumes"
        assert (kwargs["from_"], kwargs["size"]) == (10, 5)

    def test_bulk_save_returns_confirmed_count(self, es_store, monkeypatch):
        calls = []

        def fake_bulk(client, actions, **kwargs):
            calls.append((actions, kwargs))
            return len(actions) - 1, [{"index": {"_id": actions[-1]["_id"], "status": 429}}]

        monkeypatch.setattr("catalog.es_store.helpers.bulk", fake_bulk)
        records = [CatalogRecord(id=f"p{i}", name="x", brand="y") for i in range(3)]

        assert es_store.bulk_save(records) == 2
        actions, kwargs = calls[0]
        assert kwargs["raise_on_error"] is False
        assert actions[0]["_source"]["searchKeys"] == ["x", "y"]

    def test_empty_bulk_skips_the_client(self, es_store, monkeypatch):
        monkeypatch.setattr("catalog.es_store.helpers.bulk", MagicMock(side_effect=AssertionError))
        assert es_store.bulk_delete([]) == 0


class TestFailures:
    def test_transport_error_becomes_store_unavailable(self, es, es_store):
        es.ping.side_effect = ESConnectionError("connection refused")

        with pytest.raises(StoreUnavailable) as excinfo:
            es_store.ping()

        assert excinfo.value.details == {"operation": "ping"}

    def test_api_error_becomes_store_unavailable(self, es, es_store):
        es.search.side_effect = api_error(NotFoundError, 404)

        with pytest.raises(StoreUnavailable):
            es_store.find_records(RecordCriteria(), [], 0, 10)
