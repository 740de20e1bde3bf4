"""
Merge Engine: joins directory records with extracted contact data.

Records are joined on the identity key of their website. Every base
record yields exactly one MergedContact, enriched or not, and the output
depends only on the input (no clock reads), so merging the same pair
twice gives identical results.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models.enums import DataSource
from models.schema import BaseRecord, EnrichmentRecord, MergedContact
from normalizer.engine import EmailNormalizer, NameNormalizer, UrlNormalizer

logger = logging.getLogger(__name__)

EXTRACTION_UNAVAILABLE = "extraction unavailable"


class MergeEngine:
    """Cross-source join keyed by normalized website identity."""

    @staticmethod
    def identity_key(record: BaseRecord) -> str:
        """
        Identity key of a base record.

        Website first, then `place:<place_id>`, then `name:<normalized name>`.
        """
        key = UrlNormalizer.identity_key(record.website)
        if key:
            return key
        if record.place_id:
            return f"place:{record.place_id.strip()}"
        return "name:" + NameNormalizer.normalize_name(record.organization_name).lower()

    def group_enrichment(
        self, enrichment_records: List[EnrichmentRecord]
    ) -> Dict[str, List[EnrichmentRecord]]:
        """Group stage-2 rows by the identity key of their source url, keeping order."""
        groups: Dict[str, List[EnrichmentRecord]] = {}
        for record in enrichment_records:
            key = UrlNormalizer.identity_key(record.source_url)
            if not key:
                logger.debug("Skipping extraction row with unusable url %r", record.source_url)
                continue
            groups.setdefault(key, []).append(record)
        return groups

    def merge(
        self,
        base_records: List[BaseRecord],
        enrichment_records: List[EnrichmentRecord],
    ) -> List[MergedContact]:
        """One MergedContact per base record, in base-record order."""
        groups = self.group_enrichment(enrichment_records)
        contacts: List[MergedContact] = []
        matched_count = 0

        for base in base_records:
            site_key = UrlNormalizer.identity_key(base.website)
            group = groups.get(site_key, []) if site_key else []
            if group:
                matched_count += 1
                contacts.append(self._enriched(base, group))
            else:
                contacts.append(self._unmatched(base, EXTRACTION_UNAVAILABLE))

        logger.info(
            "Merged %d base records with %d extraction rows (%d matched)",
            len(base_records), len(enrichment_records), matched_count,
        )
        return contacts

    def fallback(self, base_records: List[BaseRecord], reason: str) -> List[MergedContact]:
        """Base-only contacts, used when contact extraction failed as a whole."""
        description = f"{EXTRACTION_UNAVAILABLE}: {reason}" if reason else EXTRACTION_UNAVAILABLE
        return [
            self._unmatched(base, description, error=reason or None)
            for base in base_records
        ]

    # ------------------------------------------------------------------

    def _enriched(self, base: BaseRecord, group: List[EnrichmentRecord]) -> MergedContact:
        usable = [r for r in group if not r.failed]
        errors: List[str] = []
        for r in group:
            if r.failed and r.extraction_error not in errors:
                errors.append(r.extraction_error)
        error = "; ".join(errors) or None

        if not usable:
            # Every row for this site failed; the error becomes the note
            return self._unmatched(base, f"extraction failed: {error}", error=error)

        emails = EmailNormalizer.union(*(r.emails for r in usable))
        description = _first(r.description for r in usable)
        has_contact_info = bool(emails) or EmailNormalizer.contains_email(description)

        return MergedContact(
            identity_key=self.identity_key(base),
            organization_name=base.organization_name,
            emails=emails,
            description=description,
            website=base.website,
            country=_first(r.country for r in usable),
            address=base.address,
            phone=base.phone,
            category=base.category,
            place_id=base.place_id,
            has_contact_info=has_contact_info,
            data_source=DataSource.DIRECTORY_WITH_ENRICHMENT,
            extraction_error=error,
            fetched_at=base.fetched_at,
            enriched_at=usable[0].scraped_at,
        )

    def _unmatched(
        self,
        base: BaseRecord,
        description: str,
        error: Optional[str] = None,
    ) -> MergedContact:
        return MergedContact(
            identity_key=self.identity_key(base),
            organization_name=base.organization_name,
            emails=[],
            description=description,
            website=base.website,
            address=base.address,
            phone=base.phone,
            category=base.category,
            place_id=base.place_id,
            has_contact_info=False,
            data_source=DataSource.DIRECTORY_ONLY,
            extraction_error=error,
            fetched_at=base.fetched_at,
        )


def _first(values) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None
