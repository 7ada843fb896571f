"""Wiring of registry, propagator and search over one store."""
from __future__ import annotations

from dataclasses import dataclass

from .config import Settings, settings
from .propagation import Propagator
from .registry import CanonicalRegistry
from .search import CatalogSearch
from .store import CatalogStore


@dataclass
class CatalogEngine:
    store: CatalogStore
    registry: CanonicalRegistry
    propagator: Propagator
    catalog: CatalogSearch

    @classmethod
    def from_store(cls, store: CatalogStore, config: Settings = settings) -> "CatalogEngine":
        registry = CanonicalRegistry(store, config)
        return cls(
            store=store,
            registry=registry,
            propagator=Propagator(store, registry),
            catalog=CatalogSearch(store, registry, config),
        )
