"""Data models for scraped listings and their valuations."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flip_finder.services.pricing import parse_price


class _CamelModel(BaseModel):
    # Serialized for the presentation layer in camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Listing(_CamelModel):
    """A single scraped classified ad. ``id`` is only unique within one search."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    title: str
    asking_price_text: str = ""
    location: Optional[str] = None
    link: Optional[str] = None

    @property
    def asking_price(self) -> float:
        return parse_price(self.asking_price_text)


class Valuation(_CamelModel):
    resale_value: float = Field(ge=0)
    profit: float = Field(ge=0)
    avg_sale_time_days: int = Field(ge=1)
    source: str = "synthetic"  # "market" or "synthetic"

    @property
    def has_profit(self) -> bool:
        return self.profit > 0


class ValuedListing(_CamelModel):
    """A listing that went through the full valuation pipeline."""

    listing: Listing
    valuation: Valuation

    @property
    def profit(self) -> float:
        return self.valuation.profit

    @property
    def has_profit(self) -> bool:
        return self.valuation.has_profit

    def to_public(self) -> dict:
        """Flat consumer-facing shape rendered by templates and returned by the API."""
        l, v = self.listing, self.valuation
        return {
            "id": l.id,
            "title": l.title,
            "askingPriceText": l.asking_price_text,
            "resaleValue": v.resale_value,
            "profit": v.profit,
            "avgSaleTimeDays": v.avg_sale_time_days,
            "hasProfit": v.has_profit,
            "location": l.location,
            "link": l.link,
            "valuationSource": v.source,
        }


class RankedPage(_CamelModel):
    listings: List[ValuedListing] = Field(default_factory=list)
    page: int = 1
    page_size: int = 50
    total_count: int = 0
    total_pages: int = 0
    # All valued listings, including the non-profitable ones hidden from display
    total_scanned: int = 0

    def to_public(self) -> dict:
        return {
            "listings": [v.to_public() for v in self.listings],
            "page": self.page,
            "pageSize": self.page_size,
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "totalScanned": self.total_scanned,
        }


class ListingDetail(_CamelModel):
    """Fields pulled from a single posting page, plus its valuation."""

    id: str
    url: str
    title: str
    asking_price_text: str = "Price not specified"
    description: str = "No description available"
    posted_date: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    attributes: Dict[str, str] = Field(default_factory=dict)
    map_lat: Optional[float] = None
    map_lng: Optional[float] = None
    map_address: Optional[str] = None
    valuation: Optional[Valuation] = None

    def to_public(self) -> dict:
        data = self.model_dump(by_alias=True, exclude={"valuation"})
        if self.valuation is not None:
            v = self.valuation
            data.update(
                {
                    "resaleValue": v.resale_value,
                    "profit": v.profit,
                    "avgSaleTimeDays": v.avg_sale_time_days,
                    "hasProfit": v.has_profit,
                    "valuationSource": v.source,
                }
            )
        return data
