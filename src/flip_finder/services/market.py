from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import redis
import requests

from flip_finder.errors import MarketLookupError

logger = logging.getLogger(__name__)

FINDING_URLS = {
    "PRODUCTION": "https://svcs.ebay.com/services/search/FindingService/v1",
    "SANDBOX": "https://svcs.sandbox.ebay.com/services/search/FindingService/v1",
}
TOKEN_URLS = {
    "PRODUCTION": "https://api.ebay.com/identity/v1/oauth2/token",
    "SANDBOX": "https://api.sandbox.ebay.com/identity/v1/oauth2/token",
}
OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"
DEFAULT_CACHE_TTL = int(os.environ.get("EBAY_CACHE_TTL_SECS", str(60 * 60 * 12)))  # 12h


@dataclass
class EbayConfig:
    app_id: Optional[str] = os.environ.get("EBAY_APP_ID")
    cert_id: Optional[str] = os.environ.get("EBAY_CERT_ID")
    dev_id: Optional[str] = os.environ.get("EBAY_DEV_ID")
    env: str = os.environ.get("EBAY_ENV", "PRODUCTION")
    cache_ttl_secs: int = DEFAULT_CACHE_TTL
    redis_url: Optional[str] = os.environ.get("REDIS_URL")
    user_agent: str = os.environ.get("HTTP_USER_AGENT", "flip-finder/0.1")
    entries_per_page: int = int(os.environ.get("EBAY_ENTRIES_PER_PAGE", "10"))
    timeout_secs: float = float(os.environ.get("EBAY_TIMEOUT_SECS", "15"))
    # rudimentary rate limit safeguard (client-side)
    min_interval_secs: float = float(os.environ.get("EBAY_MIN_INTERVAL_SECS", "0.3"))

    @property
    def env_key(self) -> str:
        return "SANDBOX" if (self.env or "").upper() == "SANDBOX" else "PRODUCTION"


@dataclass
class MarketQuote:
    """Aggregate of recently sold listings for one search key."""

    average_price: float
    average_sale_days: Optional[float] = None
    sample_count: int = 0


class MarketLookup:
    """Contract for sold-listings lookups. ``None`` means "no data"."""

    def get_quote(self, search_key: str) -> Optional[MarketQuote]:
        raise NotImplementedError


class NullLookup(MarketLookup):
    """Used when no marketplace credentials are configured."""

    def get_quote(self, search_key: str) -> Optional[MarketQuote]:
        return None


class EbayClient(MarketLookup):
    """Thin client for eBay's completed (sold) items search.

    - Authentication: app id on every call, plus an OAuth client-credentials
      bearer token when a cert id is configured. A failed call is retried
      once with a freshly fetched token.
    - Caching: optional Redis cache with 12h TTL; falls back to in-process dict.
      "No data" answers are cached too.
    - Rate limiting: simple client-side min-interval between requests per process.
    """

    def __init__(self, config: EbayConfig | None = None, session: requests.Session | None = None) -> None:
        self.config = config or EbayConfig()
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._last_call = 0.0
        self._pace_lock = threading.Lock()
        # key -> (expires_at, value), expired entries are pruned on write
        self._cache_local: Dict[str, Tuple[float, str]] = {}
        self._redis: Optional[redis.Redis] = None
        if self.config.redis_url:
            try:
                self._redis = redis.Redis.from_url(self.config.redis_url)
            except (redis.RedisError, ValueError) as e:
                logger.warning(f"Redis unavailable at {self.config.redis_url}, using local cache: {e}")
                self._redis = None

    def _cache_get(self, key: str) -> Optional[str]:
        if self._redis is not None:
            try:
                val = self._redis.get(key)
                return val.decode("utf-8") if isinstance(val, (bytes, bytearray)) else val
            except redis.RedisError:
                return None
        hit = self._cache_local.get(key)
        if hit is None:
            return None
        expires_at, val = hit
        if time.monotonic() >= expires_at:
            del self._cache_local[key]
            return None
        return val

    def _cache_set(self, key: str, val: str, ttl: int) -> None:
        if ttl <= 0:
            return
        if self._redis is not None:
            try:
                self._redis.setex(key, ttl, val)
                return
            except redis.RedisError:
                pass
        now = time.monotonic()
        self._cache_local = {k: v for k, v in self._cache_local.items() if v[0] > now}
        self._cache_local[key] = (now + ttl, val)

    def _fetch_token(self) -> Optional[str]:
        if not (self.config.app_id and self.config.cert_id):
            return None
        resp = self.session.post(
            TOKEN_URLS[self.config.env_key],
            auth=(self.config.app_id, self.config.cert_id),
            data={"grant_type": "client_credentials", "scope": OAUTH_SCOPE},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.config.timeout_secs,
        )
        resp.raise_for_status()
        return resp.json().get("access_token")

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"User-Agent": self.config.user_agent}
        if self.config.app_id:
            headers["X-EBAY-SOA-SECURITY-APPNAME"] = self.config.app_id
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _params(self, keywords: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "OPERATION-NAME": "findCompletedItems",
            "SERVICE-VERSION": "1.13.0",
            "SECURITY-APPNAME": self.config.app_id or "",
            "RESPONSE-DATA-FORMAT": "JSON",
            "REST-PAYLOAD": "",
            "keywords": keywords,
            "sortOrder": "EndTimeSoonest",
            "paginationInput.entriesPerPage": self.config.entries_per_page,
            "itemFilter(0).name": "SoldItemsOnly",
            "itemFilter(0).value": "true",
            "itemFilter(1).name": "ListingType",
            "itemFilter(2).name": "LocatedIn",
            "itemFilter(2).value": "US",
            "itemFilter(3).name": "Condition",
        }
        for i, kind in enumerate(("FixedPrice", "StoreInventory", "AuctionWithBIN", "Auction")):
            params[f"itemFilter(1).value({i})"] = kind
        for i, cond in enumerate(("New", "Used")):
            params[f"itemFilter(3).value({i})"] = cond
        return params

    def _pace(self) -> None:
        with self._pace_lock:
            now = time.time()
            wait = self.config.min_interval_secs - (now - self._last_call)
            if wait > 0:
                time.sleep(wait)
            self._last_call = time.time()

    def _call(self, keywords: str) -> dict:
        self._pace()
        resp = self.session.get(
            FINDING_URLS[self.config.env_key],
            params=self._params(keywords),
            headers=self._auth_headers(),
            timeout=self.config.timeout_secs,
        )
        resp.raise_for_status()
        payload = resp.json()
        check_ack(payload)
        return payload

    def find_completed(self, keywords: str) -> dict:
        """Raw findCompletedItems payload; retries once with a fresh token."""
        try:
            if self._token is None:
                self._token = self._fetch_token()
            return self._call(keywords)
        except (requests.RequestException, ValueError, MarketLookupError) as e:
            logger.warning(f"eBay call failed for '{keywords}', retrying with fresh authentication: {e}")
        try:
            self._token = self._fetch_token()
            return self._call(keywords)
        except (requests.RequestException, ValueError, MarketLookupError) as e:
            raise MarketLookupError(f"eBay lookup failed for '{keywords}': {e}") from e

    def get_quote(self, search_key: str) -> Optional[MarketQuote]:
        """Average sold price (USD) and time-on-market for ``search_key``.

        Caches results for `cache_ttl_secs` using Redis (if configured).
        """
        clean = (search_key or "").strip()
        cache_key = f"ebay:sold:{clean.lower()}:US"
        cached = self._cache_get(cache_key)
        if cached is not None:
            try:
                data = json.loads(cached)
                return MarketQuote(**data) if data else None
            except (ValueError, TypeError):
                pass

        payload = self.find_completed(clean)
        quote = parse_completed_items(payload)
        if quote is None:
            logger.info(f"No completed listings found for: {clean}")
        else:
            logger.info(
                f"Average eBay price for {clean}: ${quote.average_price:.2f} "
                f"({quote.sample_count} sold)"
            )
        self._cache_set(cache_key, json.dumps(asdict(quote) if quote else None), self.config.cache_ttl_secs)
        return quote


def _first(value: Any) -> Any:
    # Finding API JSON wraps every scalar in a one-element list
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _parse_ts(value: Any) -> Optional[datetime]:
    s = _first(value)
    if not isinstance(s, str):
        return None
    try:
        return datetime.fromisoformat(s.rstrip("Z"))
    except ValueError:
        return None


def check_ack(payload: Any) -> None:
    """Raise ``MarketLookupError`` for a Finding API error reply.

    eBay reports auth and rate-limit errors with HTTP 200 and
    ``ack: Failure``; those are lookup failures, not "no data".
    """
    if not isinstance(payload, dict):
        return
    root = _first(payload.get("findCompletedItemsResponse")) or {}
    ack = _first(root.get("ack")) if isinstance(root, dict) else None
    if ack is not None and str(ack) not in ("Success", "Warning"):
        errors = _first(root.get("errorMessage")) or {}
        error = _first(errors.get("error")) if isinstance(errors, dict) else None
        message = _first(error.get("message")) if isinstance(error, dict) else None
        raise MarketLookupError(f"eBay returned ack={ack}: {message or 'no error message'}")


def parse_completed_items(payload: dict) -> Optional[MarketQuote]:
    """Reduce a findCompletedItems response to a ``MarketQuote``.

    Raises ``MarketLookupError`` when the payload isn't shaped like a
    Finding API response at all, or when it is an error reply.
    """
    if not isinstance(payload, dict) or "findCompletedItemsResponse" not in payload:
        raise MarketLookupError("Malformed findCompletedItems response")
    check_ack(payload)
    root = _first(payload.get("findCompletedItemsResponse")) or {}
    result = _first(root.get("searchResult")) or {}
    items = result.get("item") or []

    prices: List[float] = []
    durations: List[float] = []
    for it in items:
        status = _first(it.get("sellingStatus")) or {}
        price = _first(status.get("currentPrice")) or {}
        try:
            prices.append(float(price.get("__value__")))
        except (TypeError, ValueError):
            continue
        info = _first(it.get("listingInfo")) or {}
        start, end = _parse_ts(info.get("startTime")), _parse_ts(info.get("endTime"))
        if start and end and end > start:
            durations.append((end - start).total_seconds() / 86400)

    if not prices:
        return None
    return MarketQuote(
        average_price=round(sum(prices) / len(prices), 2),
        average_sale_days=round(sum(durations) / len(durations), 1) if durations else None,
        sample_count=len(prices),
    )


def make_client(config: EbayConfig | None = None) -> MarketLookup:
    """Factory: the eBay client when an app id is configured, else ``NullLookup``."""
    cfg = config or EbayConfig()
    if not cfg.app_id:
        logger.warning("EBAY_APP_ID not set; resale values will use the synthetic estimate")
        return NullLookup()
    return EbayClient(cfg)
