from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import flip_finder.web.main as main
from flip_finder.errors import ScrapeError
from flip_finder.models import Listing, ListingDetail
from flip_finder.services.market import MarketLookup, MarketQuote


class FakeLookup(MarketLookup):
    def __init__(self, quotes):
        self.quotes = quotes

    def get_quote(self, search_key):
        return self.quotes.get(search_key)


LISTINGS = [
    Listing(id="listing-0", title="Dell laptop", asking_price_text="$100", location="downtown", link="https://x/0"),
    Listing(id="listing-1", title="ThinkPad X1", asking_price_text="$200", location="east bay", link="https://x/1"),
    Listing(id="listing-2", title="Acer netbook", asking_price_text="$80", location="south bay", link="https://x/2"),
]

QUOTES = {
    "Dell laptop": MarketQuote(average_price=300.0, average_sale_days=6.0, sample_count=10),
    "ThinkPad X1": MarketQuote(average_price=450.0, sample_count=4),
    "Acer netbook": MarketQuote(average_price=50.0, sample_count=3),
}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(main, "fetch_listings", lambda query, zipcode, settings: list(LISTINGS))
    monkeypatch.setattr(main, "lookup", FakeLookup(QUOTES))
    return TestClient(main.app)


def test_api_listings_ranks_profitable_listings(client: TestClient) -> None:
    resp = client.post("/api/listings", json={"searchQuery": "laptop", "zipcode": "94102"})
    assert resp.status_code == 200
    data = resp.json()
    assert [l["id"] for l in data["listings"]] == ["listing-1", "listing-0"]
    assert all(l["hasProfit"] for l in data["listings"])
    assert data["listings"][1]["profit"] == 200.0
    assert data["listings"][1]["avgSaleTimeDays"] == 6
    assert data["totalCount"] == 2
    assert data["totalScanned"] == 3
    assert data["totalPages"] == 1


def test_api_listings_budget_and_pagination(client: TestClient) -> None:
    resp = client.post(
        "/api/listings",
        json={"searchQuery": "laptop", "zipcode": "94102", "budget": 150, "page": 1, "pageSize": 1},
    )
    data = resp.json()
    assert [l["id"] for l in data["listings"]] == ["listing-0"]
    assert data["pageSize"] == 1

    resp = client.post("/api/listings", json={"searchQuery": "laptop", "zipcode": "94102", "page": 5})
    assert resp.status_code == 200
    assert resp.json()["listings"] == []


def test_api_listings_requires_query_and_zip(client: TestClient) -> None:
    resp = client.post("/api/listings", json={"searchQuery": "", "zipcode": "94102"})
    assert resp.status_code == 400
    assert "required" in resp.json()["error"]


def test_api_listings_scrape_failure(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    def failing(query, zipcode, settings):
        raise ScrapeError("No listings found")

    monkeypatch.setattr(main, "fetch_listings", failing)
    resp = client.post("/api/listings", json={"searchQuery": "laptop", "zipcode": "94102"})
    assert resp.status_code == 502
    assert resp.json()["message"] == "No listings found"


def test_api_value(client: TestClient) -> None:
    resp = client.post("/api/value", json={"title": "Dell laptop", "price": "$100"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["resaleValue"] == 300.0
    assert data["profit"] == 200.0
    assert data["hasProfit"] is True

    assert client.post("/api/value", json={"title": "", "price": "$5"}).status_code == 400


def test_listing_details(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    def fake_detail(listing_id, url, settings):
        return ListingDetail(id=listing_id, url=url, title="ThinkPad X1", asking_price_text="$200")

    monkeypatch.setattr(main, "fetch_listing_detail", fake_detail)
    resp = client.get("/api/listing-details", params={"id": "listing-1", "url": "https://x/1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "ThinkPad X1"
    assert data["askingPriceText"] == "$200"
    assert data["profit"] == 250.0

    assert client.get("/api/listing-details", params={"id": "listing-1"}).status_code == 400

    page = client.get("/listing/listing-1", params={"url": "https://x/1"})
    assert page.status_code == 200
    assert "ThinkPad X1" in page.text


def test_search_page_renders(client: TestClient) -> None:
    resp = client.get("/search", params={"q": "laptop", "zipcode": "94102", "budget": ""})
    assert resp.status_code == 200
    assert "ThinkPad X1" in resp.text
    assert "Acer netbook" not in resp.text

    assert client.get("/search", params={"q": "", "zipcode": "94102"}).status_code == 400
    assert client.get("/").status_code == 200


def test_index_renders_search_form(client: TestClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert 'name="q"' in resp.text
    assert "94102" in resp.text
