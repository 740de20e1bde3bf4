"""
Harvesting pipeline: plan, merge, filter, orchestrate.
"""

from .filters import FilterOutcome, dedupe_contacts, filter_contacts
from .merge import EXTRACTION_UNAVAILABLE, MergeEngine
from .orchestrator import SearchOrchestrator
from .planner import QueryPlanner
from .relevance import RelevanceFilter, RelevanceOutcome
from .url_extractor import UrlExtractor

__all__ = [
    "FilterOutcome",
    "dedupe_contacts",
    "filter_contacts",
    "EXTRACTION_UNAVAILABLE",
    "MergeEngine",
    "SearchOrchestrator",
    "QueryPlanner",
    "RelevanceFilter",
    "RelevanceOutcome",
    "UrlExtractor",
]
