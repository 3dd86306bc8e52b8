"""Shared API schemas: camelCase on the wire, built straight from pipeline dataclasses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from workers.analysis.models import UserProduct


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserProductIn(CamelModel):
    name: str
    url: str | None = None
    price: float | None = None
    currency: str | None = None

    def to_domain(self) -> UserProduct:
        return UserProduct(name=self.name, url=self.url, price=self.price, currency=self.currency)


class MatchedProductOut(CamelModel):
    name: str
    url: str | None
    match_score: int
    price_diff: float | None
    price: float | None = None
    currency: str | None = None


class ProductMatchOut(CamelModel):
    name: str
    url: str | None
    price: float | None
    currency: str
    matched_products: list[MatchedProductOut]
    last_updated: str
