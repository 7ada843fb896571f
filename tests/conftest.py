"""Shared fixtures: a small catalog in the in-memory store."""
from __future__ import annotations

import pytest

from catalog.engine import CatalogEngine
from catalog.models import CatalogRecord, EntityKind, Gender, Notes, PerfumerCredit
from catalog.store import InMemoryStore


def make_record(record_id: str, name: str, brand: str, **fields) -> CatalogRecord:
    return CatalogRecord(id=record_id, name=name, brand=brand, **fields)


@pytest.fixture
def records() -> list[CatalogRecord]:
    return [
        make_record(
            "p1",
            "Sauvage",
            "Dior",
            brandRu="Диор",
            releaseYear=2015,
            gender=Gender.MALE,
            perfumers=[PerfumerCredit(en="Francois Demachy", ru="Франсуа Демаши")],
            notes=Notes(top=["Bergamot", "Pepper"], heart=["Lavender"], base=["Ambroxan"]),
            ratingCount=120,
            ratingValue=8.1,
        ),
        make_record(
            "p2",
            "J'adore",
            "DIOR",
            releaseYear=1999,
            gender=Gender.FEMALE,
            perfumers=[
                PerfumerCredit(en="Calice Becker", ru="Калис Беккер"),
                PerfumerCredit(en="Francois Demachy", ru="Франсуа Демаши"),
            ],
            notes=Notes(top=["Pear"], heart=["Jasmine"], base=["Musk"], additional=["bergamot"]),
            ratingCount=300,
            ratingValue=8.7,
        ),
        make_record(
            "p3",
            "Chanel No 5",
            "Chanel",
            nameRu="Шанель №5",
            brandRu="Шанель",
            releaseYear=1921,
            gender=Gender.FEMALE,
            perfumers=[PerfumerCredit(en="Ernest Beaux", ru="Эрнест Бо")],
            notes=Notes(top=["Aldehydes", "Bergamot"], heart=["Rose"], base=["Sandalwood"]),
            ratingCount=500,
            ratingValue=9.0,
        ),
        make_record(
            "p4",
            "Bleu de Chanel",
            "Chanel",
            releaseYear=2010,
            gender=Gender.MALE,
            perfumers=[PerfumerCredit(en="Jacques Polge", ru="Жак Польж")],
            notes=Notes(top=["Grapefruit"], heart=["Ginger"], base=["Incense"]),
            ratingCount=120,
            ratingValue=8.4,
        ),
        make_record(
            "p5",
            "Terre d'Hermès",
            "Hermès",
            releaseYear=2006,
            gender=Gender.MALE,
            perfumers=[PerfumerCredit(en="Jean-Claude Ellena", ru="Жан-Клод Эллена")],
            notes=Notes(top=["Orange"], heart=["Pepper"], base=["Vetiver"]),
            ratingCount=80,
            ratingValue=8.9,
        ),
    ]


@pytest.fixture
def store(records: list[CatalogRecord]) -> InMemoryStore:
    return InMemoryStore(records)


@pytest.fixture
def engine(store: InMemoryStore) -> CatalogEngine:
    return CatalogEngine.from_store(store)


@pytest.fixture
def discovered(engine: CatalogEngine) -> CatalogEngine:
    """Engine whose registry has been populated for every kind."""
    for kind in EntityKind:
        engine.registry.discover_all(kind)
    return engine
