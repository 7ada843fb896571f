"""Push registry edits out to every denormalized copy in the catalog.

Each operation commits the registry change first and only then rewrites the
catalog with a read-then-bulk-write pass. A crash in between leaves the
registry updated and the catalog partially stale, never the other way round.
The returned counts are informational; nothing is retried automatically.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import Conflict, InvalidInput, PartialPropagationFailure, StoreUnavailable
from .models import CanonicalEntity, CatalogRecord, EntityKind, Notes, PropagationResult
from .normalization import fold
from .registry import CanonicalRegistry
from .slugs import is_slug
from .store import CatalogStore, PerfumerMatch, RecordCriteria

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _same(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and fold(left) == fold(right)


@dataclass(frozen=True)
class NameRewrite:
    """Old -> new value pairs for one entity; a ``None`` side means "leave alone".

    The one exception is a note with only ``old_original`` set, which is pulled.
    """

    old_original: str | None = None
    new_original: str | None = None
    old_localized: str | None = None
    new_localized: str | None = None

    @property
    def rewrites_original(self) -> bool:
        return self.old_original is not None and self.new_original is not None

    @property
    def rewrites_localized(self) -> bool:
        return self.old_localized is not None and self.new_localized is not None

    def criteria(self, kind: EntityKind) -> RecordCriteria | None:
        if kind is EntityKind.PERFUMER:
            if not (self.rewrites_original or self.rewrites_localized):
                return None
            return RecordCriteria(
                perfumer=PerfumerMatch(
                    en=self.old_original if self.rewrites_original else None,
                    ru=self.old_localized if self.rewrites_localized else None,
                )
            )
        if kind is EntityKind.BRAND:
            return RecordCriteria(brand=self.old_original) if self.rewrites_original else None
        # Notes: a missing new name means the note is pulled.
        return RecordCriteria(note=self.old_original) if self.old_original is not None else None

    def apply(self, kind: EntityKind, record: CatalogRecord) -> CatalogRecord:
        if kind is EntityKind.BRAND:
            return record.model_copy(update={"brand": self.new_original})
        if kind is EntityKind.PERFUMER:
            credits = []
            for credit in record.perfumers:
                update = {}
                if self.rewrites_original and _same(credit.en, self.old_original):
                    update["en"] = self.new_original
                elif self.rewrites_original and not credit.en and _same(credit.ru, self.old_original):
                    # ru-only credit: its ru is the original name
                    update["ru"] = self.new_original
                if self.rewrites_localized and _same(credit.ru, self.old_localized):
                    update["ru"] = self.new_localized
                credits.append(credit.model_copy(update=update) if update else credit)
            return record.model_copy(update={"perfumers": credits})
        return record.model_copy(update={"notes": replace_note(record.notes, self.old_original, self.new_original)})


def replace_note(notes: Notes, old: str, new: str | None) -> Notes:
    """Rewrite (or, with ``new=None``, pull) a note in every category.

    Only elements equal to ``old`` change. A rewritten element is dropped when
    its category already lists ``new``; other elements are left as they are.
    """
    updated = {}
    for category, values in notes.categories():
        untouched = [value for value in values if not _same(value, old)]
        result: list[str] = []
        for value in values:
            if _same(value, old):
                if new is None:
                    continue
                if any(_same(other, new) for other in untouched + result):
                    continue
                value = new
            result.append(value)
        updated[category] = result
    return Notes(**updated)


class Propagator:
    def __init__(self, store: CatalogStore, registry: CanonicalRegistry | None = None) -> None:
        self.store = store
        self.registry = registry or CanonicalRegistry(store)

    def rename(
        self,
        kind: EntityKind,
        entity_id: str,
        new_original_name: str | None = None,
        new_localized_name: str | None = None,
        new_slug: str | None = None,
    ) -> PropagationResult:
        """Update the supplied fields of an entity and rewrite its catalog copies.

        The slug only changes when ``new_slug`` is passed; it is never derived
        from the new name because external links use the old one.
        """
        original = _clean(new_original_name)
        localized = _clean(new_localized_name)
        slug = _clean(new_slug)
        if original is None and localized is None and slug is None:
            raise InvalidInput("nothing to rename: supply originalName, localizedName or slug")

        entity = self.registry.get_by_id(kind, entity_id)
        if slug is not None and slug != entity.slug:
            if not is_slug(slug):
                raise InvalidInput(f"{slug!r} is not a valid slug", {"slug": slug})
            other = self.store.find_entity(kind, slug=slug)
            if other is not None and other.id != entity.id:
                raise Conflict(f"slug {slug!r} is already used", {"slug": slug, "existingId": other.id})
        if original is not None:
            other = self.store.find_entity(kind, original_name=original)
            if other is not None and other.id != entity.id:
                raise Conflict(
                    f"{kind.value} {original!r} already exists", {"originalName": original, "existingId": other.id}
                )

        changes: dict[str, str] = {}
        if original is not None:
            changes["originalName"] = original
        if localized is not None:
            changes["localizedName"] = localized
        if slug is not None:
            changes["slug"] = slug
        updated = entity.model_copy(update=changes)
        self.store.save_entity(kind, updated)
        logger.info("rename kind=%s id=%s changes=%s", kind.value, entity.id, changes)

        rewrite = NameRewrite(
            old_original=entity.originalName if original is not None and original != entity.originalName else None,
            new_original=original,
            old_localized=(
                entity.localizedName if localized is not None and localized != entity.localizedName else None
            ),
            new_localized=localized,
        )
        affected = self._propagate("rename", kind, updated, rewrite)
        return PropagationResult(entity=updated, affectedRecords=affected)

    def delete_cascade(self, kind: EntityKind, entity_id: str) -> PropagationResult:
        """Delete an entity and everything in the catalog that named it.

        Brands and perfumers take their records with them; a deleted note is
        only pulled from the note lists.
        """
        entity = self.registry.delete_by_id(kind, entity_id)

        if kind is EntityKind.NOTE:
            affected = self._propagate("delete", kind, entity, NameRewrite(old_original=entity.originalName))
            return PropagationResult(entity=entity, affectedRecords=affected)

        if kind is EntityKind.BRAND:
            criteria = RecordCriteria(brand=entity.originalName)
        else:
            criteria = RecordCriteria(perfumer=PerfumerMatch(en=entity.originalName, ru=entity.localizedName))
        record_ids: list[str] = []
        try:
            record_ids = [record.id for record in self.store.scan_records(criteria)]
            confirmed = self.store.bulk_delete(record_ids)
        except StoreUnavailable as exc:
            raise self._failure("delete", kind, entity, len(record_ids), 0, exc) from exc
        self._confirm("delete", kind, entity, len(record_ids), confirmed)
        logger.info("delete kind=%s id=%s deleted_records=%s", kind.value, entity.id, confirmed)
        return PropagationResult(entity=entity, affectedRecords=len(record_ids))

    def merge(self, kind: EntityKind, source_id: str, target_id: str) -> PropagationResult:
        """Fold ``source`` into ``target``: drop the source entity, then rename its copies."""
        if source_id == target_id:
            raise InvalidInput("cannot merge an entity into itself", {"id": source_id})
        source = self.registry.get_by_id(kind, source_id)
        target = self.registry.get_by_id(kind, target_id)
        self.registry.delete_by_id(kind, source.id)

        rewrite = NameRewrite(
            old_original=source.originalName,
            new_original=target.originalName,
            old_localized=source.localizedName if target.localizedName else None,
            new_localized=target.localizedName,
        )
        affected = self._propagate("merge", kind, target, rewrite)
        logger.info("merge kind=%s source=%s target=%s affected=%s", kind.value, source.id, target.id, affected)
        return PropagationResult(entity=target, affectedRecords=affected)

    def _propagate(self, operation: str, kind: EntityKind, entity: CanonicalEntity, rewrite: NameRewrite) -> int:
        criteria = rewrite.criteria(kind)
        if criteria is None:
            logger.info("%s kind=%s id=%s: nothing to propagate", operation, kind.value, entity.id)
            return 0

        matched: list[CatalogRecord] = []
        try:
            matched = list(self.store.scan_records(criteria))
            confirmed = self.store.bulk_save([rewrite.apply(kind, r) for r in matched])
        except StoreUnavailable as exc:
            raise self._failure(operation, kind, entity, len(matched), 0, exc) from exc
        self._confirm(operation, kind, entity, len(matched), confirmed)
        logger.info("%s kind=%s id=%s affected_records=%s", operation, kind.value, entity.id, len(matched))
        return len(matched)

    @classmethod
    def _confirm(
        cls, operation: str, kind: EntityKind, entity: CanonicalEntity, attempted: int, confirmed: int
    ) -> None:
        if confirmed < attempted:
            raise cls._failure(operation, kind, entity, attempted, confirmed)

    @staticmethod
    def _failure(
        operation: str,
        kind: EntityKind,
        entity: CanonicalEntity,
        attempted: int,
        confirmed: int,
        cause: StoreUnavailable | None = None,
    ) -> PartialPropagationFailure:
        details = {"operation": operation, "kind": kind.value, "id": entity.id}
        if cause is not None:
            details["cause"] = cause.message
        logger.error(
            "%s kind=%s id=%s: registry updated, catalog confirmed %s of %s records",
            operation,
            kind.value,
            entity.id,
            confirmed,
            attempted,
        )
        return PartialPropagationFailure(
            f"{operation} of {kind.value} {entity.originalName!r} reached {confirmed} of {attempted} records",
            attempted=attempted,
            confirmed=confirmed,
            details=details,
        )
