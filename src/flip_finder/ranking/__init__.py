from .ranker import ListingRanker, RankConfig, paginate, rank, within_budget

__all__ = ["ListingRanker", "RankConfig", "paginate", "rank", "within_budget"]
