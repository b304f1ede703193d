"""Craigslist search scraping built on Scrapy selectors."""

from __future__ import annotations

import logging
import random
from typing import Iterator, List, Optional
from urllib.parse import urlencode

import requests
import scrapy
from scrapy.http import HtmlResponse, Response
from scrapy.selector import SelectorList

from flip_finder.config import Settings
from flip_finder.errors import ScrapeError
from flip_finder.models import Listing

logger = logging.getLogger(__name__)

DEFAULT_REGION = "sfbay"
# First two zipcode digits -> nearest major Craigslist region
ZIP_REGIONS = {
    "90": "losangeles",
    "91": "losangeles",
    "92": "orangecounty",
    "93": "ventura",
    "94": "sfbay",
    "95": "sfbay",
    "96": "sacramento",
    "97": "portland",
    "98": "seattle",
    "99": "spokane",
    "10": "newyork",
    "11": "newyork",
    "12": "albany",
    "60": "chicago",
    "75": "dallas",
    "77": "houston",
}
SEARCH_DISTANCE_MILES = 50

CARD_SELECTOR = ".cl-static-search-result, li.result-row"
TITLE_SELECTOR = ".titlestring, h3, .title, .result-title"
PRICE_SELECTOR = ".priceinfo, .price, .result-price"

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Referer": "https://craigslist.org/",
}


def region_for_zip(zipcode: str) -> str:
    return ZIP_REGIONS.get((zipcode or "")[:2], DEFAULT_REGION)


def base_url(zipcode: str) -> str:
    return f"https://{region_for_zip(zipcode)}.craigslist.org"


def search_url(query: str, zipcode: str) -> str:
    qs = urlencode({"query": query, "postal": zipcode, "search_distance": SEARCH_DISTANCE_MILES})
    return f"{base_url(zipcode)}/search/sss?{qs}"


def _text(sel: scrapy.Selector | SelectorList) -> str:
    return " ".join(t.strip() for t in sel.xpath(".//text()").getall() if t and t.strip())


class ListingSpider(scrapy.Spider):
    """Extracts ``Listing`` objects from a Craigslist search results page.

    Runs standalone (``scrapy runspider``) or is fed a single response by
    ``fetch_listings``. Newer result pages use ``li.cl-static-search-result``;
    older ones ``li.result-row``. When neither matches, any ``li`` carrying a
    heading or a link is tried, de-duplicated by title.
    """

    name = "craigslist"
    custom_settings = {
        "DOWNLOAD_DELAY": 0.5,
        "AUTOTHROTTLE_ENABLED": True,
        "RETRY_TIMES": 3,
        "LOG_LEVEL": "INFO",
    }

    def __init__(self, query: Optional[str] = None, zipcode: Optional[str] = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.query = query or ""
        self.zipcode = zipcode or ""
        self.start_urls = [search_url(self.query, self.zipcode)] if self.query else []
        self._count = 0

    def _make(self, title: str, price: str, href: Optional[str], location: str, response: Response) -> Listing:
        link = response.urljoin(href) if href else None
        item = Listing(
            id=f"listing-{self._count}",
            title=title,
            asking_price_text=price,
            location=location or None,
            link=link,
        )
        self._count += 1
        return item

    def parse(self, response: Response, **kwargs: object) -> Iterator[Listing]:
        cards = response.css(CARD_SELECTOR)
        logger.debug(f"Found {len(cards)} potential listing elements on {response.url}")
        if cards:
            for card in cards:
                title = _text(card.css(TITLE_SELECTOR)[:1])
                price = _text(card.css(PRICE_SELECTOR)[:1])
                href = card.css("a::attr(href)").get()
                location = _text(card.css(".meta, .result-hood"))
                if title and price:
                    yield self._make(title, price, href, location, response)
            return

        seen: set[str] = set()
        for li in response.css("li"):
            if not (li.css("h3") or li.css(".title") or li.css("a")):
                continue
            title = _text(li.css("h3, .title")) or _text(li.css("a")[:1])
            price = _text(li.css(PRICE_SELECTOR)[:1])
            if not title or not price or title in seen:
                continue
            seen.add(title)
            href = li.css("a::attr(href)").get()
            location = _text(li.css(".location, .meta"))
            yield self._make(title, price, href, location, response)


def extract_listings(response: Response) -> List[Listing]:
    return list(ListingSpider().parse(response))


def sample_listings(rng: Optional[random.Random] = None, count: int = 120) -> List[Listing]:
    """Demo listings for local development when a search comes back empty."""
    rng = rng or random.Random()
    areas = ["downtown", "south bay", "east bay", "north bay", "peninsula"]
    raw = [
        (
            f"Sample Listing {i + 1} - Item {rng.randrange(1000)}",
            f"${rng.randrange(200, 2200)}",
            rng.choice(areas),
        )
        for i in range(count)
    ]
    raw += [
        ("MacBook Pro 2023 - 16GB RAM", "$1200", "downtown"),
        ("Dell XPS 15 - Like New", "$899", "south bay"),
        ("HP Pavilion Gaming Laptop", "$650", "east bay"),
    ]
    return [
        Listing(id=f"listing-{i}", title=t, asking_price_text=p, location=loc, link="https://craigslist.org")
        for i, (t, p, loc) in enumerate(raw)
    ]


def fetch_page(url: str, settings: Settings) -> HtmlResponse:
    headers = dict(BROWSER_HEADERS, **{"User-Agent": settings.user_agent})
    try:
        resp = requests.get(url, headers=headers, timeout=settings.http_timeout_secs)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ScrapeError(f"Failed to fetch {url}: {e}") from e
    return HtmlResponse(url=resp.url or url, body=resp.content, encoding=resp.encoding or "utf-8")


def fetch_listings(query: str, zipcode: str, settings: Optional[Settings] = None) -> List[Listing]:
    """Fetch and extract one page of search results.

    Raises ``ScrapeError`` when the page can't be fetched or yields nothing,
    unless the sample fallback is switched on.
    """
    settings = settings or Settings()
    url = search_url(query, zipcode)
    logger.info(f"Fetching listings from {region_for_zip(zipcode)} region for zipcode {zipcode}: {url}")
    try:
        listings = extract_listings(fetch_page(url, settings))
    except ScrapeError:
        if not settings.sample_fallback:
            raise
        logger.exception("Search fetch failed; serving sample listings")
        return sample_listings()
    logger.info(f"Extracted {len(listings)} listings for '{query}'")
    if not listings:
        if settings.sample_fallback:
            logger.info("No listings found with selectors, serving sample listings")
            return sample_listings()
        raise ScrapeError(f"No listings found for '{query}' near {zipcode}")
    return listings
