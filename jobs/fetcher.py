"""
Result Fetcher: pages through a succeeded run's items.

Raw items are validated here and come out as typed records in stable
retrieval order.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from errors import PreconditionError
from models.enums import Stage
from models.schema import BaseRecord, EnrichmentRecord, JobRun
from validators.rules import RecordValidator, ValidationResult
from .client import JobClient
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

Record = Union[BaseRecord, EnrichmentRecord]


class ResultFetcher:
    """Paginated, validated result retrieval."""

    def __init__(
        self,
        client: JobClient,
        page_size: int = 250,
        max_items: int = 10000,
        retry: Optional[RetryPolicy] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self.client = client
        self.page_size = page_size
        self.max_items = max_items
        self.retry = retry or RetryPolicy()
        self.validator = validator or RecordValidator()

    def fetch_raw(self, run: JobRun) -> List[Dict[str, Any]]:
        """All raw items of a succeeded run, bounded by `max_items`."""
        if not run.succeeded or not run.result_ref:
            raise PreconditionError(
                f"Cannot fetch results of run {run.external_run_id} in status {run.status.value}"
            )

        items: List[Any] = []
        offset = 0
        total = None
        while offset < self.max_items:
            limit = min(self.page_size, self.max_items - offset)
            page = self.retry.call(
                self.client.get_items, run.result_ref, offset, limit,
                description=f"fetch {run.result_ref}@{offset}",
            )
            total = page.total
            if not page.items:
                break
            items.extend(page.items[:limit])
            offset += len(page.items[:limit])
            if offset >= total:
                break

        if total is not None and total > len(items) and len(items) >= self.max_items:
            logger.warning(
                "Result set %s truncated at %d of %d items", run.result_ref, len(items), total
            )
        logger.info("Fetched %d items from %s", len(items), run.result_ref)
        return items

    def fetch_with_report(self, run: JobRun) -> Tuple[List[Record], ValidationResult]:
        """Typed records plus the validation report for rejected items."""
        raw = self.fetch_raw(run)
        if run.stage == Stage.DIRECTORY_SEARCH:
            return self.validator.parse_base_records(raw)
        return self.validator.parse_enrichment_records(raw)

    def fetch(self, run: JobRun) -> List[Record]:
        records, report = self.fetch_with_report(run)
        if not report.is_valid:
            logger.warning(
                "%d of %d items rejected for run %s",
                len(report.errors), len(records) + len(report.errors), run.external_run_id,
            )
        return records
