from __future__ import annotations

import pytest

from flip_finder.errors import InvalidRequestError
from flip_finder.models import Listing, Valuation, ValuedListing
from flip_finder.ranking import paginate, rank, within_budget


def valued(i: int, price: float, profit: float) -> ValuedListing:
    return ValuedListing(
        listing=Listing(id=f"listing-{i}", title=f"Item {i}", asking_price_text=f"${price:,.2f}"),
        valuation=Valuation(resale_value=price + profit, profit=profit, avg_sale_time_days=7),
    )


def test_sorted_by_profit_descending_and_stable():
    items = [valued(0, 100, 5), valued(1, 100, 50), valued(2, 100, 5), valued(3, 100, 20), valued(4, 100, 50)]
    page = rank(items)
    ids = [v.listing.id for v in page.listings]
    assert ids == ["listing-1", "listing-4", "listing-3", "listing-0", "listing-2"]
    profits = [v.profit for v in page.listings]
    assert all(a >= b for a, b in zip(profits, profits[1:]))


def test_profitable_only_hides_zero_profit_but_counts_them():
    items = [valued(0, 100, 0), valued(1, 100, 10), valued(2, 100, 0)]
    page = rank(items)
    assert [v.listing.id for v in page.listings] == ["listing-1"]
    assert all(v.has_profit for v in page.listings)
    assert page.total_count == 1
    assert page.total_scanned == 3

    everything = rank(items, profitable_only=False)
    assert everything.total_count == 3
    assert [v.listing.id for v in everything.listings] == ["listing-1", "listing-0", "listing-2"]


def test_budget_filter_uses_parsed_price():
    items = [valued(0, 1200, 10), valued(1, 300, 10), valued(2, 300.01, 10)]
    page = rank(items, budget=300)
    assert [v.listing.id for v in page.listings] == ["listing-1"]
    assert all(v.listing.asking_price <= 300 for v in page.listings)


@pytest.mark.parametrize("budget", [None, 0, -1])
def test_budget_ignored_unless_positive(budget):
    items = [valued(0, 1200, 10), valued(1, 300, 10)]
    assert len(within_budget(items, budget)) == 2


def test_pagination_over_120_items():
    items = [valued(i, 100, 500 - i) for i in range(120)]

    page2 = rank(items, page=2, page_size=50)
    assert [v.listing.id for v in page2.listings] == [f"listing-{i}" for i in range(50, 100)]
    assert page2.total_pages == 3
    assert page2.total_count == 120

    page3 = rank(items, page=3, page_size=50)
    assert len(page3.listings) == 20
    assert page3.listings[-1].listing.id == "listing-119"

    assert rank(items, page=4, page_size=50).listings == []


def test_empty_ranking():
    page = rank([])
    assert page.listings == []
    assert page.total_pages == 0


def test_paginate_rejects_bad_arguments():
    with pytest.raises(InvalidRequestError):
        paginate([1, 2, 3], 0, 10)
    with pytest.raises(InvalidRequestError):
        paginate([1, 2, 3], 1, 0)
    assert paginate([1, 2, 3], 2, 2) == [3]


def test_public_shape():
    page = rank([valued(0, 100, 25.5)], page_size=10).to_public()
    assert set(page) == {"listings", "page", "pageSize", "totalCount", "totalPages", "totalScanned"}
    item = page["listings"][0]
    assert item["askingPriceText"] == "$100.00"
    assert item["resaleValue"] == 125.5
    assert item["hasProfit"] is True
    assert {"id", "title", "profit", "avgSaleTimeDays", "location", "link"} <= set(item)
