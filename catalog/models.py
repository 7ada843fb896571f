"""Pydantic models for the catalog, the registry and request/response payloads."""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, ClassVar, Generic, Iterator, TypeVar

from pydantic import BaseModel, Field

from .normalization import record_search_keys

T = TypeVar("T")


class EntityKind(str, Enum):
    BRAND = "brand"
    PERFUMER = "perfumer"
    NOTE = "note"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNISEX = "unisex"


class CanonicalEntity(BaseModel):
    """Authoritative record for a brand, perfumer or note name.

    ``id`` is the slug computed when the entity was first stored and stays
    fixed; ``slug`` only moves on an explicit rename.
    """

    id: str
    originalName: str
    localizedName: str | None = None
    slug: str


class PerfumerCredit(BaseModel):
    """One perfumer named in both languages."""

    en: str | None = None
    ru: str | None = None


class Notes(BaseModel):
    CATEGORIES: ClassVar[tuple[str, ...]] = ("top", "heart", "base", "additional")

    top: list[str] = Field(default_factory=list)
    heart: list[str] = Field(default_factory=list)
    base: list[str] = Field(default_factory=list)
    additional: list[str] = Field(default_factory=list)

    def categories(self) -> Iterator[tuple[str, list[str]]]:
        for category in self.CATEGORIES:
            yield category, getattr(self, category)

    def all(self) -> list[str]:
        return [note for _category, values in self.categories() for note in values]


class UserRating(BaseModel):
    userId: str
    scent: float = Field(..., ge=0, le=5)
    longevity: float = Field(..., ge=0, le=5)
    sillage: float = Field(..., ge=0, le=5)
    packaging: float = Field(..., ge=0, le=5)
    value: float = Field(..., ge=0, le=5)


class CatalogRecord(BaseModel):
    """A perfume with brand, perfumer and note names denormalized by value."""

    id: str
    name: str
    nameRu: str | None = None
    brand: str
    brandRu: str | None = None
    releaseYear: int | None = None
    gender: Gender | None = None
    perfumers: list[PerfumerCredit] = Field(default_factory=list)
    notes: Notes = Field(default_factory=Notes)
    ratingCount: int = 0
    ratingValue: float = 0.0
    userRatings: list[UserRating] = Field(default_factory=list)
    needsReview: bool = False

    @property
    def perfumersEn(self) -> list[str]:
        return [credit.en or "" for credit in self.perfumers]

    @property
    def perfumersRu(self) -> list[str]:
        return [credit.ru or "" for credit in self.perfumers]

    def search_keys(self) -> list[str]:
        return record_search_keys((self.name, self.nameRu, self.brand, self.brandRu))

    def to_document(self) -> dict[str, Any]:
        document = self.model_dump(mode="json")
        document["searchKeys"] = self.search_keys()
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "CatalogRecord":
        return cls.model_validate({k: v for k, v in document.items() if k != "searchKeys"})


class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    totalPages: int
    totalItems: int

    @classmethod
    def build(cls, items: list[Any], page: int, limit: int, total: int) -> "Page":
        return cls(
            items=items,
            page=page,
            totalPages=math.ceil(total / limit) if total else 0,
            totalItems=total,
        )


class SearchFilters(BaseModel):
    query: str | None = Field(None, description="Free-text query over name and brand")
    brand: str | None = Field(None, description="Brand slug")
    perfumer: str | None = Field(None, description="Perfumer slug")
    note: str | None = Field(None, description="Note id")
    gender: Gender | None = None
    year: int | None = Field(None, description="Exact release year")


class CreateEntityRequest(BaseModel):
    originalName: str
    localizedName: str | None = None


class RenameRequest(BaseModel):
    originalName: str | None = None
    localizedName: str | None = None
    slug: str | None = None


class PropagationResult(BaseModel):
    entity: CanonicalEntity
    affectedRecords: int


class DuplicateGroup(BaseModel):
    key: str
    entities: list[CanonicalEntity]
