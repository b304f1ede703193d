from __future__ import annotations

import math
from typing import List, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel

from flip_finder.errors import InvalidRequestError
from flip_finder.models import Listing, RankedPage, ValuedListing

T = TypeVar("T")
L = TypeVar("L", Listing, ValuedListing)


class RankConfig(BaseModel):
    budget: Optional[float] = None
    page: int = 1
    page_size: int = 50
    profitable_only: bool = True


def _asking_price(item: Union[Listing, ValuedListing]) -> float:
    listing = item.listing if isinstance(item, ValuedListing) else item
    return listing.asking_price


def within_budget(items: Sequence[L], budget: Optional[float]) -> List[L]:
    """Drop items priced above ``budget``; no-op unless budget is positive."""
    if budget is None or budget <= 0:
        return list(items)
    return [it for it in items if _asking_price(it) <= budget]


def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    """1-indexed slice; a page past the end is empty, not an error."""
    if page < 1:
        raise InvalidRequestError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise InvalidRequestError(f"page_size must be >= 1, got {page_size}")
    start = (page - 1) * page_size
    return list(items[start : min(start + page_size, len(items))])


class ListingRanker:
    """Budget filter, profitable-only filter, profit sort and pagination."""

    def __init__(self, config: RankConfig) -> None:
        self.config = config

    def order(self, valued: Sequence[ValuedListing]) -> List[ValuedListing]:
        items = within_budget(valued, self.config.budget)
        if self.config.profitable_only:
            items = [v for v in items if v.has_profit]
        # sorted() is stable with reverse=True: ties keep scrape order
        return sorted(items, key=lambda v: v.profit, reverse=True)

    def apply(self, valued: Sequence[ValuedListing]) -> RankedPage:
        ordered = self.order(valued)
        size = self.config.page_size
        page_items = paginate(ordered, self.config.page, size)
        return RankedPage(
            listings=page_items,
            page=self.config.page,
            page_size=size,
            total_count=len(ordered),
            total_pages=math.ceil(len(ordered) / size),
            total_scanned=len(valued),
        )


def rank(
    valued: Sequence[ValuedListing],
    budget: Optional[float] = None,
    page: int = 1,
    page_size: int = 50,
    profitable_only: bool = True,
) -> RankedPage:
    cfg = RankConfig(budget=budget, page=page, page_size=page_size, profitable_only=profitable_only)
    return ListingRanker(cfg).apply(valued)
