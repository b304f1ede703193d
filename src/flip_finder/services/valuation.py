"""Resale value, profit and time-to-sale estimates for a single listing.

When the sold-listings lookup has no data the resale value is a randomized
placeholder, not a pricing model: each value tier draws a multiplier on the
asking price from a two-branch distribution (profitable resale with
probability ``p``, otherwise a loss). Only the distribution shape is stable,
never the exact number. Pass a seeded ``random.Random`` to pin it down.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from flip_finder.models import Listing, Valuation, ValuedListing
from flip_finder.services.classifier import TIER_HIGH, TIER_LOW, TIER_REGULAR, TierClassifier

ACCESSORY_WORDS = re.compile(r"bag|case|charger|stand|sleeve|adapter", re.IGNORECASE)
MIN_SEARCH_KEY_LEN = 3

Range = Tuple[float, float]


@dataclass(frozen=True)
class TierOdds:
    p_profit: float
    profit_range: Range
    loss_range: Range


TIER_ODDS: Dict[str, TierOdds] = {
    TIER_HIGH: TierOdds(0.6, (1.2, 1.8), (0.8, 1.0)),
    TIER_LOW: TierOdds(0.2, (1.1, 1.4), (0.5, 1.0)),
    TIER_REGULAR: TierOdds(0.4, (1.1, 1.5), (0.7, 1.0)),
}

# Upper bounds strictly decrease with confidence
VERY_FAST_DAYS: Range = (1, 3)
FAST_DAYS: Range = (3, 7)
PROFIT_DAYS: Range = (7, 14)
SLOW_DAYS: Range = (14, 28)


def search_key(title: str) -> str:
    """Sold-listings search key: the title up to the first hyphen, minus accessory words."""
    head = (title or "").split("-", 1)[0].strip()
    s = ACCESSORY_WORDS.sub("", head)
    return re.sub(r"\s+", " ", s).strip()


def is_searchable(key: str) -> bool:
    return len(key or "") >= MIN_SEARCH_KEY_LEN


def calculate_profit(asking_price: float, resale_value: float) -> float:
    """Profit from flipping; a loss is reported as 0, never negative."""
    if resale_value > asking_price:
        return round(resale_value - asking_price, 2)
    return 0.0


def _draw(rng: random.Random, r: Range) -> float:
    lo, hi = r
    return lo + rng.random() * (hi - lo)


class ValuationService:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        classifier: Optional[TierClassifier] = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.classifier = classifier or TierClassifier()

    def synthetic_multiplier(self, title: str) -> float:
        odds = TIER_ODDS[self.classifier.classify(title).tier]
        if self.rng.random() < odds.p_profit:
            return _draw(self.rng, odds.profit_range)
        return _draw(self.rng, odds.loss_range)

    def estimate_resale(self, title: str, market_price: Optional[float], asking_price: float) -> float:
        if market_price is not None and market_price > 0:
            return round(float(market_price), 2)
        return round(asking_price * self.synthetic_multiplier(title), 2)

    def estimate_days(self, title: str, profit: float) -> int:
        high = self.classifier.classify(title).is_high_value
        fast = high or profit > 50
        very_fast = high and profit > 100
        if very_fast:
            r = VERY_FAST_DAYS
        elif fast:
            r = FAST_DAYS
        elif profit > 0:
            r = PROFIT_DAYS
        else:
            r = SLOW_DAYS
        return max(1, int(round(_draw(self.rng, r))))

    def value(
        self,
        listing: Listing,
        market_price: Optional[float] = None,
        market_sale_days: Optional[float] = None,
    ) -> ValuedListing:
        asking = listing.asking_price
        from_market = market_price is not None and market_price > 0
        resale = self.estimate_resale(listing.title, market_price, asking)
        profit = calculate_profit(asking, resale)
        if from_market and market_sale_days is not None and market_sale_days > 0:
            days = max(1, int(round(market_sale_days)))
        else:
            days = self.estimate_days(listing.title, profit)
        source = "market" if from_market else "synthetic"
        return ValuedListing(
            listing=listing,
            valuation=Valuation(
                resale_value=resale,
                profit=profit,
                avg_sale_time_days=days,
                source=source,
            ),
        )
