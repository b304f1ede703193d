"""Classified-ad flip finder: scrape listings, value them, rank by profit."""

__version__ = "0.1.0"
