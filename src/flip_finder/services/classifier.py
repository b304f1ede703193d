from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


HIGH_VALUE = re.compile(r"macbook|iphone|ipad|pro|gaming|rtx|premium|new|sealed", re.IGNORECASE)
LOW_VALUE = re.compile(r"broken|damaged|parts|cracked|as is", re.IGNORECASE)

TIER_HIGH = "high"
TIER_LOW = "low"
TIER_REGULAR = "regular"


@dataclass
class TierResult:
    tier: str
    reason: Optional[str] = None

    @property
    def is_high_value(self) -> bool:
        return self.tier == TIER_HIGH


class TierClassifier:
    """Keyword heuristic that sorts listing titles into value tiers.

    - High-value keywords win over low-value ones when a title has both.
    - Matching is substring-based and case-insensitive, so "Pro" also hits
      "Projector"; the tiers only steer the placeholder estimate.
    """

    def __init__(self, high: re.Pattern[str] = HIGH_VALUE, low: re.Pattern[str] = LOW_VALUE) -> None:
        self.high = high
        self.low = low

    def classify(self, title: str) -> TierResult:
        t = title or ""
        m = self.high.search(t)
        if m:
            return TierResult(TIER_HIGH, reason=m.group(0).lower())
        m = self.low.search(t)
        if m:
            return TierResult(TIER_LOW, reason=m.group(0).lower())
        return TierResult(TIER_REGULAR)


_default = TierClassifier()


def classify(title: str) -> TierResult:
    return _default.classify(title)


def is_high_value(title: str) -> bool:
    return _default.classify(title).is_high_value
