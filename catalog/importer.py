"""Bulk loader for legacy perfume exports (a JSON array of documents)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import settings
from .migration import MismatchPolicy, record_from_legacy
from .models import CatalogRecord
from .store import CatalogStore, RecordCriteria

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    imported: int = 0
    flagged: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


def _load_documents(path: Path) -> list[dict]:
    if not path.exists():
        logger.warning("Perfumes file %s is missing", path)
        return []
    # Detect Git LFS placeholder to avoid attempting to parse it as JSON.
    with path.open("r", encoding="utf-8") as fh:
        first_line = fh.readline()
        if first_line.startswith("version https://git-lfs.github.com/spec/v1"):
            logger.warning("Perfumes file %s is a Git LFS pointer; real data not downloaded", path)
            return []
        fh.seek(0)
        return json.load(fh)


def prepare_records(documents: list[dict], policy: MismatchPolicy, report: ImportReport) -> list[CatalogRecord]:
    records: list[CatalogRecord] = []
    for position, document in enumerate(documents):
        try:
            record = record_from_legacy(document, policy)
        except ValueError as exc:
            logger.warning("Skipping document #%s: %s", position, exc)
            report.rejected.append(str(document.get("perfume_id") or document.get("_id") or position))
            continue
        if record.needsReview:
            report.flagged.append(record.id)
        records.append(record)
    return records


def import_records(store: CatalogStore, path: str | Path | None = None, policy: MismatchPolicy | None = None) -> ImportReport:
    policy = policy or MismatchPolicy(settings.credit_mismatch_policy)
    report = ImportReport()
    documents = _load_documents(Path(path or settings.perfumes_path))
    if not documents:
        return report
    records = prepare_records(documents, policy, report)
    report.imported = store.bulk_save(records)
    logger.info(
        "Imported %s perfumes (flagged=%s rejected=%s)", report.imported, len(report.flagged), len(report.rejected)
    )
    return report


def import_if_empty(store: CatalogStore) -> ImportReport:
    _records, total = store.find_records(RecordCriteria(), [], 0, 1)
    if total > 0:
        return ImportReport()
    return import_records(store)
