"""
Query Planner: turns raw search input into a validated SearchTask.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from errors import InvalidInputError
from jobs.client import MAX_QUERIES, MAX_QUERY_LENGTH
from models.schema import Location, SearchTask
from normalizer.engine import NameNormalizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
MAX_RESULTS_CAP = 300
_LANGUAGE_RE = re.compile(r"^[a-z]{2}$")

LocationInput = Union[Location, Dict[str, Any], str, None]


class QueryPlanner:
    """
    Build SearchTasks from caller input.

    Usage:
        task = QueryPlanner().plan(["gym", "fitness club"], location="AE")
    """

    def plan(
        self,
        queries: Union[str, List[str]],
        location: LocationInput = None,
        max_results: Optional[int] = None,
        language: str = "en",
        name: Optional[str] = None,
        include_contactless: bool = False,
    ) -> SearchTask:
        cleaned = self.normalize_queries(queries)
        cap = self._cap(max_results)

        if not isinstance(language, str) or not _LANGUAGE_RE.match(language.strip()):
            raise InvalidInputError(f"Language must be a two-letter lowercase code, got {language!r}")

        try:
            return SearchTask(
                name=NameNormalizer.normalize_name(name) or None,
                queries=cleaned,
                location=self._location(location),
                max_results=cap,
                language=language.strip(),
                include_contactless=bool(include_contactless),
            )
        except ValidationError as e:
            raise InvalidInputError(f"Invalid search task: {e.errors()[0]['msg']}") from e

    @staticmethod
    def normalize_queries(queries: Union[str, List[str], None]) -> List[str]:
        """Trim, collapse whitespace, drop empties and case-insensitive duplicates."""
        if isinstance(queries, str):
            queries = [queries]
        if queries is None:
            queries = []

        cleaned: List[str] = []
        seen = set()
        for raw in queries:
            if not isinstance(raw, str):
                raise InvalidInputError(f"Query must be a string, got {type(raw).__name__}")
            query = NameNormalizer.normalize_name(raw)
            if not query:
                continue
            if len(query) > MAX_QUERY_LENGTH:
                raise InvalidInputError(
                    f"Query longer than {MAX_QUERY_LENGTH} characters: {query[:40]}..."
                )
            key = query.lower()
            if key in seen:
                continue
            seen.add(key)
            cleaned.append(query)

        if not cleaned:
            raise InvalidInputError("At least one non-empty query is required")
        if len(cleaned) > MAX_QUERIES:
            logger.warning(
                "%d queries supplied, keeping the first %d", len(cleaned), MAX_QUERIES
            )
            cleaned = cleaned[:MAX_QUERIES]
        return cleaned

    @staticmethod
    def _cap(max_results: Optional[int]) -> int:
        if max_results is None:
            return DEFAULT_MAX_RESULTS
        if isinstance(max_results, bool) or not isinstance(max_results, int):
            raise InvalidInputError(f"max_results must be an integer, got {max_results!r}")
        if max_results < 1:
            raise InvalidInputError(f"max_results must be positive, got {max_results}")
        if max_results > MAX_RESULTS_CAP:
            logger.info("max_results %d clamped to %d", max_results, MAX_RESULTS_CAP)
            return MAX_RESULTS_CAP
        return max_results

    @staticmethod
    def _location(location: LocationInput) -> Location:
        if location is None:
            return Location()
        if isinstance(location, Location):
            return location
        try:
            if isinstance(location, dict):
                return Location(**location)
            if isinstance(location, str):
                text = NameNormalizer.normalize_name(location)
                if len(text) == 2 and text.isalpha():
                    return Location(country_code=text)
                return Location(query=text or None)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid location: {e.errors()[0]['msg']}") from e
        raise InvalidInputError(f"Unsupported location type: {type(location).__name__}")
