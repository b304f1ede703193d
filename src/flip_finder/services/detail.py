from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from scrapy.http import Response

from flip_finder.config import Settings
from flip_finder.models import Listing, ListingDetail
from flip_finder.services.scraper import fetch_page

logger = logging.getLogger(__name__)

QR_NOTICE = "QR Code Link to This Post"
_SCRIPT_LAT = re.compile(r"var\s+lat\s*=\s*([-+]?\d*\.\d+|\d+)", re.IGNORECASE)
_SCRIPT_LNG = re.compile(r"var\s+lng\s*=\s*([-+]?\d*\.\d+|\d+)", re.IGNORECASE)
_THUMB_SIZE = re.compile(r"\d+x\d+")


def _float(val: Optional[str]) -> Optional[float]:
    try:
        return float(val) if val not in (None, "") else None
    except ValueError:
        return None


def _clean(parts: List[str]) -> str:
    return re.sub(r"\s+", " ", " ".join(p.strip() for p in parts if p and p.strip())).strip()


def _extract_images(response: Response) -> List[str]:
    images: List[str] = []
    for src in response.css(".gallery img::attr(src), .swipe img::attr(src), #thumbs .thumb img::attr(src)").getall():
        full = _THUMB_SIZE.sub("600x450", src)
        if full not in images:
            images.append(full)
    if not images:
        for src in response.css("img::attr(src)").getall():
            if "images.craigslist" in src:
                full = src.replace("50x50c", "600x450")
                if full not in images:
                    images.append(full)
    return images


def _extract_attributes(response: Response) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for span in response.css(".attrgroup span"):
        text = _clean(span.xpath(".//text()").getall())
        if ":" in text:
            key, value = text.split(":", 1)
            attrs[key.strip()] = value.strip()
    return attrs


def _extract_map(response: Response) -> Tuple[Optional[float], Optional[float]]:
    # data attributes on #map, then an inline map script, then any lat-tagged element
    lat = _float(response.css("#map::attr(data-latitude)").get())
    lng = _float(response.css("#map::attr(data-longitude)").get())
    if lat is None or lng is None:
        for script in response.css("script::text").getall():
            if "var map" not in script:
                continue
            m_lat, m_lng = _SCRIPT_LAT.search(script), _SCRIPT_LNG.search(script)
            if m_lat and m_lng:
                lat, lng = float(m_lat.group(1)), float(m_lng.group(1))
    if lat is None or lng is None:
        el = response.css("[data-latitude], [data-lat]")[:1]
        if el:
            lat = _float(el.attrib.get("data-latitude") or el.attrib.get("data-lat"))
            lng = _float(el.attrib.get("data-longitude") or el.attrib.get("data-lng"))
    return lat, lng


def parse_listing_detail(listing_id: str, response: Response) -> ListingDetail:
    """Pull the detail fields out of a single Craigslist posting page."""
    title = (
        _clean(response.css(".postingtitle h1, .title h1").xpath(".//text()").getall())
        or _clean(response.css("h1, .posting-title")[:1].xpath(".//text()").getall())
        or _clean(response.css(".title")[:1].xpath(".//text()").getall())
    )
    price = _clean(response.css(".price")[:1].xpath(".//text()").getall())
    body = response.css("#postingbody, .postingbody, .posting-body")[:1]
    description = _clean(body.xpath(".//text()").getall()).replace(QR_NOTICE, "").strip()
    posted = response.css(".postinginfo time::attr(datetime)").get() or _clean(
        response.css(".date")[:1].xpath(".//text()").getall()
    )
    address = None
    for node in response.css(".mapaddress"):
        address = _clean(node.xpath(".//text()").getall()) or address
    lat, lng = _extract_map(response)
    return ListingDetail(
        id=listing_id,
        url=response.url,
        title=title,
        asking_price_text=price or "Price not specified",
        description=description or "No description available",
        posted_date=posted or None,
        images=_extract_images(response),
        attributes=_extract_attributes(response),
        map_lat=lat,
        map_lng=lng,
        map_address=address,
    )


def fetch_listing_detail(listing_id: str, url: str, settings: Optional[Settings] = None) -> ListingDetail:
    settings = settings or Settings()
    logger.info(f"Fetching details for listing ID: {listing_id}, URL: {url}")
    return parse_listing_detail(listing_id, fetch_page(url, settings))


def as_listing(detail: ListingDetail) -> Listing:
    """The search-result view of a detail page, for running it through valuation."""
    return Listing(
        id=detail.id,
        title=detail.title,
        asking_price_text=detail.asking_price_text,
        location=detail.map_address,
        link=detail.url,
    )
