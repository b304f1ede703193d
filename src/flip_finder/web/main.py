from __future__ import annotations

import asyncio
import html
import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flip_finder.config import Settings
from flip_finder.errors import InvalidRequestError, ScrapeError
from flip_finder.models import Listing, ListingDetail, RankedPage
from flip_finder.services.detail import as_listing, fetch_listing_detail
from flip_finder.services.market import make_client
from flip_finder.services.pipeline import value_and_rank, value_listings
from flip_finder.services.scraper import fetch_listings, region_for_zip
from flip_finder.utils.log import configure_logging

logger = logging.getLogger(__name__)

app = FastAPI(title="Flip Finder")
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
settings = Settings()
lookup = make_client()


class SearchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    search_query: str = ""
    zipcode: str = ""
    budget: Optional[float] = None
    page: int = Field(1, ge=1)
    page_size: Optional[int] = Field(None, ge=1, le=500)
    profitable_only: bool = True


class ValueRequest(BaseModel):
    title: str = ""
    price: Union[str, float] = ""


@app.on_event("startup")
def on_startup() -> None:
    configure_logging(settings.log_level)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(ScrapeError)
async def scrape_error_handler(request: Request, exc: ScrapeError) -> JSONResponse:
    logger.error(f"Scrape failed: {exc}")
    return JSONResponse({"error": "Failed to fetch listings", "message": str(exc)}, status_code=502)


async def run_search(req: SearchRequest) -> RankedPage:
    query = (req.search_query or "").strip()
    zipcode = (req.zipcode or "").strip()
    if not query or not zipcode:
        raise InvalidRequestError("Search query and zipcode are required")
    logger.info(f"Getting sorted listings for: {query} in {zipcode}, budget: {req.budget}, page: {req.page}")
    listings = await asyncio.to_thread(fetch_listings, query, zipcode, settings)
    return await value_and_rank(
        listings,
        lookup,
        budget=req.budget,
        page=req.page,
        page_size=req.page_size if req.page_size is not None else settings.page_size,
        profitable_only=req.profitable_only,
        settings=settings,
    )


async def run_detail(listing_id: str, url: Optional[str]) -> ListingDetail:
    if not url:
        raise InvalidRequestError("Missing listing URL")
    detail = await asyncio.to_thread(fetch_listing_detail, listing_id, url, settings)
    valued = await value_listings(
        [as_listing(detail)],
        lookup,
        concurrency=1,
        timeout=settings.lookup_timeout_secs,
    )
    detail.valuation = valued[0].valuation
    return detail


@app.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "index.html",
        {"search_query": "laptop", "zipcode": "94102", "page_size": settings.page_size},
    )


@app.get("/search", response_class=HTMLResponse)
async def search(
    request: Request,
    q: Optional[str] = Query(None, description="Search term"),
    zipcode: Optional[str] = Query(None),
    budget: Optional[str] = Query(None),
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None),
) -> HTMLResponse:
    # Parse numeric inputs defensively to handle empty strings from forms
    def _f(s: Optional[str]) -> Optional[float]:
        try:
            return float(s) if s not in (None, "") else None
        except ValueError:
            return None

    def _i(s: Optional[str], default: int) -> int:
        try:
            return max(1, int(s)) if s not in (None, "") else default
        except ValueError:
            return default

    req = SearchRequest(
        search_query=q or "",
        zipcode=zipcode or "",
        budget=_f(budget),
        page=_i(page, 1),
        page_size=min(500, _i(page_size, settings.page_size)),
    )
    ctx = {"search_query": req.search_query, "zipcode": req.zipcode, "budget": req.budget}
    try:
        ranked = await run_search(req)
    except InvalidRequestError as e:
        return templates.TemplateResponse(request, "partials/results.html", dict(ctx, error=str(e)), status_code=400)
    except ScrapeError as e:
        logger.error(f"Scrape failed: {e}")
        return templates.TemplateResponse(
            request, "partials/results.html", dict(ctx, error=f"Error fetching listings: {e}"), status_code=502
        )
    return templates.TemplateResponse(
        request,
        "partials/results.html",
        dict(ctx, ranked=ranked.to_public(), region=region_for_zip(req.zipcode)),
    )


@app.post("/api/listings")
async def api_listings(req: SearchRequest) -> JSONResponse:
    ranked = await run_search(req)
    return JSONResponse(ranked.to_public())


@app.post("/api/value")
async def api_value(req: ValueRequest) -> JSONResponse:
    """Value a single title/price pair without scraping anything."""
    if not req.title.strip():
        raise InvalidRequestError("Title is required")
    listing = Listing(id="listing-0", title=req.title, asking_price_text=str(req.price))
    valued = await value_listings([listing], lookup, concurrency=1, timeout=settings.lookup_timeout_secs)
    return JSONResponse(valued[0].to_public())


@app.get("/api/listing-details")
async def api_listing_details(
    id: str = Query("", description="Listing id from the search results"),
    url: Optional[str] = Query(None),
) -> JSONResponse:
    detail = await run_detail(id, url)
    return JSONResponse(detail.to_public())


@app.get("/listing/{listing_id}", response_class=HTMLResponse)
async def listing_page(request: Request, listing_id: str, url: Optional[str] = Query(None)) -> HTMLResponse:
    if not url:
        return HTMLResponse("<div>Listing URL is required.</div>", status_code=400)
    try:
        detail = await run_detail(listing_id, url)
    except ScrapeError as e:
        return HTMLResponse(f"<div>Failed to fetch listing details: {html.escape(str(e))}</div>", status_code=502)
    return templates.TemplateResponse(request, "listing.html", {"listing": detail.to_public()})
