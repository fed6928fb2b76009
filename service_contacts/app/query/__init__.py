"""List and detail reads for contacts."""

from .planner import KeysetQuery, OffsetQuery, QueryPlanner, contact_cache_key, list_cache_key
from .search import SearchPlan, plan_search

__all__ = [
    "KeysetQuery",
    "OffsetQuery",
    "QueryPlanner",
    "SearchPlan",
    "contact_cache_key",
    "list_cache_key",
    "plan_search",
]
