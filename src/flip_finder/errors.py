from __future__ import annotations


class FlipFinderError(RuntimeError):
    """Base class for errors raised by flip_finder."""


class ScrapeError(FlipFinderError):
    """No listings could be obtained for a search."""


class MarketLookupError(FlipFinderError):
    """The sold-listings service was unreachable or returned garbage."""


class InvalidRequestError(FlipFinderError, ValueError):
    pass
