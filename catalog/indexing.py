"""Index creation and maintenance helpers."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from elasticsearch import Elasticsearch
from elasticsearch.exceptions import BadRequestError, NotFoundError

from .config import Settings, settings
from .models import EntityKind

logger = logging.getLogger(__name__)

PERFUMES_MAPPING = "perfumes.json"
ENTITIES_MAPPING = "entities.json"


def _load_mapping(mapping_path: Path) -> dict:
    with mapping_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def index_layout(config: Settings = settings) -> list[tuple[str, str]]:
    """``(index name, mapping file)`` for the catalog and each registry kind."""
    layout = [(config.perfumes_index, PERFUMES_MAPPING)]
    layout.extend((config.entity_index(kind.value), ENTITIES_MAPPING) for kind in EntityKind)
    return layout


async def ensure_indices(es: Elasticsearch, config: Settings = settings) -> list[str]:
    """Create any missing index; returns the names that were created."""
    created: list[str] = []
    mapping_dir = Path(config.mapping_dir)
    for index, mapping_file in index_layout(config):
        exists = await asyncio.to_thread(es.indices.exists, index=index)
        if exists:
            continue
        body = _load_mapping(mapping_dir / mapping_file)
        logger.info("Creating index %s using %s", index, mapping_dir / mapping_file)
        try:
            await asyncio.to_thread(
                es.indices.create, index=index, settings=body.get("settings"), mappings=body.get("mappings")
            )
        except BadRequestError as exc:
            if getattr(exc, "error", "") == "resource_already_exists_exception":
                logger.info("Index %s already exists", index)
                continue
            logger.exception("Failed to create index %s: %s", index, exc)
            raise
        created.append(index)
    return created


async def drop_indices(es: Elasticsearch, config: Settings = settings) -> None:
    for index, _mapping_file in index_layout(config):
        try:
            await asyncio.to_thread(es.indices.delete, index=index)
        except NotFoundError:
            continue
