from .listing import Listing, ListingDetail, RankedPage, Valuation, ValuedListing

__all__ = ["Listing", "ListingDetail", "RankedPage", "Valuation", "ValuedListing"]
