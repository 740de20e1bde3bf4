"""
Dedup & contact filter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from models.enums import DataSource
from models.schema import MergedContact
from normalizer.engine import EmailNormalizer

logger = logging.getLogger(__name__)


@dataclass
class FilterOutcome:
    """Contacts kept and dropped by the contact filter."""

    kept: List[MergedContact] = field(default_factory=list)
    dropped: List[MergedContact] = field(default_factory=list)


def _combine(earlier: MergedContact, later: MergedContact) -> MergedContact:
    """Earlier record keeps its scalar fields; emails are unioned."""
    emails = EmailNormalizer.union(earlier.emails, later.emails)
    data = earlier.model_dump()
    data.update(
        emails=emails,
        primary_email=earlier.primary_email,
        has_contact_info=bool(emails) or EmailNormalizer.contains_email(earlier.description),
    )
    if DataSource.DIRECTORY_WITH_ENRICHMENT in (earlier.data_source, later.data_source):
        data["data_source"] = DataSource.DIRECTORY_WITH_ENRICHMENT
    return MergedContact(**data)


def dedupe_contacts(contacts: List[MergedContact]) -> List[MergedContact]:
    """
    Collapse contacts sharing an identity key.

    Input order is the stable retrieval order, so the first occurrence is
    the earlier-fetched record and wins on collision.
    """
    by_key: Dict[str, MergedContact] = {}
    for contact in contacts:
        existing = by_key.get(contact.identity_key)
        by_key[contact.identity_key] = _combine(existing, contact) if existing else contact

    collapsed = len(contacts) - len(by_key)
    if collapsed:
        logger.info("Collapsed %d duplicate contacts", collapsed)
    # dicts keep first-insertion order
    return list(by_key.values())


def filter_contacts(
    contacts: List[MergedContact],
    include_contactless: bool = False,
) -> FilterOutcome:
    """Drop contacts without contact info unless `include_contactless` is set."""
    if include_contactless:
        return FilterOutcome(kept=list(contacts))

    outcome = FilterOutcome()
    for contact in contacts:
        if contact.has_contact_info:
            outcome.kept.append(contact)
        else:
            outcome.dropped.append(contact)
    return outcome
