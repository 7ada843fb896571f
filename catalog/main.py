"""FastAPI application exposing the catalog engine."""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .config import settings
from .engine import CatalogEngine
from .errors import CatalogError
from .es_store import ElasticsearchStore, get_client
from .importer import import_if_empty
from .indexing import ensure_indices
from .models import (
    CanonicalEntity,
    CatalogRecord,
    CreateEntityRequest,
    DuplicateGroup,
    EntityKind,
    Gender,
    Page,
    PropagationResult,
    RenameRequest,
    SearchFilters,
    UserRating,
)
from .ranking import SortPolicy

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

# Replace uvicorn's default handlers so engine logs share one format.
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)
logger.info("Logging configured at %s", settings.log_level.upper())

app = FastAPI(title="Perfume Catalog Service")


@lru_cache(maxsize=1)
def get_engine() -> CatalogEngine:
    return CatalogEngine.from_store(ElasticsearchStore(get_client()))


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event() -> None:
    es = get_client()
    await ensure_indices(es)
    if settings.load_on_startup:
        report = await asyncio.to_thread(import_if_empty, get_engine().store)
        if report.imported:
            logger.info("Imported %s perfumes on startup", report.imported)


@app.get("/health")
async def health(engine: CatalogEngine = Depends(get_engine)) -> dict:
    reachable = await asyncio.to_thread(engine.store.ping)
    return {"store": "up" if reachable else "down"}


@app.post("/registry/{kind}/discover", response_model=list[CanonicalEntity])
async def discover(kind: EntityKind, engine: CatalogEngine = Depends(get_engine)) -> list[CanonicalEntity]:
    return await asyncio.to_thread(engine.registry.discover_all, kind)


@app.get("/registry/{kind}/slug/{slug}", response_model=CanonicalEntity)
async def get_by_slug(kind: EntityKind, slug: str, engine: CatalogEngine = Depends(get_engine)) -> CanonicalEntity:
    return await asyncio.to_thread(engine.registry.find_by_slug, kind, slug)


@app.get("/registry/{kind}/initial/{letter}", response_model=list[CanonicalEntity])
async def get_by_initial(
    kind: EntityKind, letter: str, engine: CatalogEngine = Depends(get_engine)
) -> list[CanonicalEntity]:
    return await asyncio.to_thread(engine.registry.find_by_initial, kind, letter)


@app.get("/registry/{kind}/search", response_model=Page[CanonicalEntity])
async def search_registry(
    kind: EntityKind,
    q: str = Query("", description="Search query"),
    page: int = 1,
    limit: int | None = None,
    engine: CatalogEngine = Depends(get_engine),
) -> Page[CanonicalEntity]:
    return await asyncio.to_thread(engine.registry.search, kind, q, page, limit)


@app.get("/registry/{kind}/duplicates", response_model=list[DuplicateGroup])
async def duplicates(kind: EntityKind, engine: CatalogEngine = Depends(get_engine)) -> list[DuplicateGroup]:
    return await asyncio.to_thread(engine.registry.find_duplicates, kind)


@app.post("/registry/{kind}", response_model=CanonicalEntity, status_code=201)
async def create_entity(
    kind: EntityKind, payload: CreateEntityRequest, engine: CatalogEngine = Depends(get_engine)
) -> CanonicalEntity:
    return await asyncio.to_thread(engine.registry.create, kind, payload.originalName, payload.localizedName)


@app.get("/registry/{kind}/{entity_id}", response_model=CanonicalEntity)
async def get_entity(kind: EntityKind, entity_id: str, engine: CatalogEngine = Depends(get_engine)) -> CanonicalEntity:
    return await asyncio.to_thread(engine.registry.get_by_id, kind, entity_id)


@app.patch("/registry/{kind}/{entity_id}", response_model=PropagationResult)
async def rename_entity(
    kind: EntityKind, entity_id: str, payload: RenameRequest, engine: CatalogEngine = Depends(get_engine)
) -> PropagationResult:
    return await asyncio.to_thread(
        engine.propagator.rename, kind, entity_id, payload.originalName, payload.localizedName, payload.slug
    )


@app.delete("/registry/{kind}/{entity_id}", response_model=PropagationResult)
async def delete_entity(
    kind: EntityKind,
    entity_id: str,
    cascade: bool = True,
    engine: CatalogEngine = Depends(get_engine),
) -> PropagationResult:
    if cascade:
        return await asyncio.to_thread(engine.propagator.delete_cascade, kind, entity_id)
    entity = await asyncio.to_thread(engine.registry.delete_by_id, kind, entity_id)
    return PropagationResult(entity=entity, affectedRecords=0)


@app.post("/registry/{kind}/{entity_id}/merge/{target_id}", response_model=PropagationResult)
async def merge_entity(
    kind: EntityKind, entity_id: str, target_id: str, engine: CatalogEngine = Depends(get_engine)
) -> PropagationResult:
    return await asyncio.to_thread(engine.propagator.merge, kind, entity_id, target_id)


@app.get("/perfumes/search", response_model=Page[CatalogRecord])
async def search_perfumes(
    query: str | None = Query(None, description="Free-text query"),
    brand: str | None = Query(None, description="Brand slug"),
    perfumer: str | None = Query(None, description="Perfumer slug"),
    note: str | None = Query(None, description="Note id"),
    gender: Gender | None = None,
    year: int | None = None,
    sort: SortPolicy = Query(SortPolicy.RELEVANCE, alias="sortBy"),
    then_by: SortPolicy | None = Query(None, alias="thenBy"),
    page: int = 1,
    limit: int | None = None,
    engine: CatalogEngine = Depends(get_engine),
) -> Page[CatalogRecord]:
    filters = SearchFilters(query=query, brand=brand, perfumer=perfumer, note=note, gender=gender, year=year)
    return await asyncio.to_thread(engine.catalog.search, filters, sort, page, limit, then_by)


@app.post("/perfumes/{record_id}/ratings", response_model=CatalogRecord)
async def rate_perfume(
    record_id: str, rating: UserRating, engine: CatalogEngine = Depends(get_engine)
) -> CatalogRecord:
    return await asyncio.to_thread(engine.catalog.rate, record_id, rating)
