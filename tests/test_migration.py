"""Legacy document conversion and the bulk importer."""
import json

import pytest

from catalog.importer import import_if_empty, import_records
from catalog.migration import MismatchPolicy, pair_credits, record_from_legacy
from catalog.models import CatalogRecord, Gender, PerfumerCredit
from catalog.store import InMemoryStore

LEGACY = {
    "_id": {"$oid": "64f0c0ffee"},
    "perfume_id": "sauvage-2015",
    "name": "Sauvage",
    "brand": "Dior",
    "brand_ru": "Диор",
    "release_year": 2015,
    "gender": "Мужской",
    "perfumers_en": ["Francois Demachy"],
    "perfumers": ["Франсуа Демаши"],
    "notes": {"top_notes": ["Bergamot"], "heart_notes": ["Lavender"], "base_notes": ["Ambroxan"]},
    "rating_count": 2,
    "rating_value": 6.0,
    "user_ratings": [{"userId": "u1", "smell": 5, "longevity": 4, "sillage": 3, "bottle": 2, "priceValue": 1}],
}


class TestPairCredits:
    def test_equal_lengths(self):
        credits, flagged = pair_credits(["A", "B"], ["А", "Б"])
        assert credits == [PerfumerCredit(en="A", ru="А"), PerfumerCredit(en="B", ru="Б")]
        assert flagged is False

    def test_truncate(self):
        credits, flagged = pair_credits(["A", "B"], ["А"], MismatchPolicy.TRUNCATE)
        assert credits == [PerfumerCredit(en="A", ru="А")]
        assert flagged is False

    def test_pad(self):
        credits, flagged = pair_credits(["A"], ["А", "Б"], MismatchPolicy.PAD)
        assert credits == [PerfumerCredit(en="A", ru="А"), PerfumerCredit(en=None, ru="Б")]
        assert flagged is False

    def test_flag_pads_and_marks(self):
        credits, flagged = pair_credits(["A", "B"], [], MismatchPolicy.FLAG)
        assert credits == [PerfumerCredit(en="A"), PerfumerCredit(en="B")]
        assert flagged is True

    def test_blank_entries_become_none(self):
        credits, _flagged = pair_credits(["A", ""], ["", "Б"])
        assert credits == [PerfumerCredit(en="A"), PerfumerCredit(ru="Б")]


class TestRecordFromLegacy:
    def test_maps_legacy_fields(self):
        record = record_from_legacy(LEGACY)

        assert record.id == "sauvage-2015"
        assert record.brandRu == "Диор"
        assert record.gender is Gender.MALE
        assert record.perfumers == [PerfumerCredit(en="Francois Demachy", ru="Франсуа Демаши")]
        assert record.notes.top == ["Bergamot"]
        assert record.notes.additional == []
        assert record.userRatings[0].scent == 5
        assert record.userRatings[0].packaging == 2
        assert record.needsReview is False

    def test_object_id_fallback(self):
        document = {k: v for k, v in LEGACY.items() if k != "perfume_id"}
        assert record_from_legacy(document).id == "64f0c0ffee"

    def test_missing_id_is_rejected(self):
        with pytest.raises(ValueError):
            record_from_legacy({"name": "Nameless", "brand": "Acme"})

    def test_perfumers_ru_takes_precedence(self):
        document = dict(LEGACY, perfumers_ru=["Ф. Демаши"])
        assert record_from_legacy(document).perfumers[0].ru == "Ф. Демаши"

    def test_mismatch_is_flagged(self):
        document = dict(LEGACY, perfumers_en=["Francois Demachy", "Olivier Polge"])
        record = record_from_legacy(document)

        assert record.needsReview is True
        assert record.perfumers[1] == PerfumerCredit(en="Olivier Polge")

    def test_migrated_documents_pass_through(self):
        migrated = CatalogRecord(
            id="p1", name="Sauvage", brand="Dior", perfumers=[PerfumerCredit(en="Francois Demachy")]
        )
        assert record_from_legacy(migrated.to_document()) == migrated


class TestImporter:
    def write(self, tmp_path, documents):
        path = tmp_path / "perfumes.json"
        path.write_text(json.dumps(documents, ensure_ascii=False), encoding="utf-8")
        return path

    def test_import_reports_flagged_and_rejected(self, tmp_path):
        flagged = dict(LEGACY, perfume_id="two", perfumers_en=["A", "B"])
        path = self.write(tmp_path, [LEGACY, flagged, {"name": "No id", "brand": "Acme"}])
        store = InMemoryStore()

        report = import_records(store, path, MismatchPolicy.FLAG)

        assert report.imported == 2
        assert report.flagged == ["two"]
        assert len(report.rejected) == 1
        assert store.get_record("sauvage-2015").name == "Sauvage"

    def test_missing_file(self, tmp_path):
        assert import_records(InMemoryStore(), tmp_path / "absent.json").imported == 0

    def test_lfs_pointer_is_skipped(self, tmp_path):
        path = tmp_path / "perfumes.json"
        path.write_text("version https://git-lfs.github.com/spec/v1\noid sha256:abc\nsize 12\n", encoding="utf-8")
        assert import_records(InMemoryStore(), path).imported == 0

    def test_import_if_empty_skips_populated_store(self, store):
        assert import_if_empty(store).imported == 0
        assert store.get_record("sauvage-2015") is None
