"""
Relevance Filter: drops contacts unrelated to the search terms.

Scoring:
  - Term match:  +10 per query term found in name/description/category
  - Email:       +20
  - Phone:       +5

A contact with no matching term is irrelevant. The filter is advisory:
if it would remove more than `max_drop_fraction` of its input, nothing
is removed and the outcome is flagged for manual review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from models.schema import MergedContact
from normalizer.engine import NameNormalizer

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 3


@dataclass
class RelevanceOutcome:
    """Result of a relevance pass."""

    kept: List[MergedContact] = field(default_factory=list)
    dropped: List[MergedContact] = field(default_factory=list)
    needs_review: bool = False
    reasons: List[str] = field(default_factory=list)
    truncated: int = 0


class RelevanceFilter:
    """Token-overlap relevance check with a drop-fraction safety valve."""

    TERM_SCORE = 10
    EMAIL_SCORE = 20
    PHONE_SCORE = 5

    def __init__(self, max_drop_fraction: float = 0.5):
        self.max_drop_fraction = max_drop_fraction

    @staticmethod
    def terms(queries: Iterable[str]) -> List[str]:
        """Lower-cased query words longer than two characters, first-seen order."""
        result: List[str] = []
        for query in queries or []:
            for token in NameNormalizer.tokens(query):
                if len(token) >= MIN_TERM_LENGTH and token not in result:
                    result.append(token)
        return result

    def score(self, contact: MergedContact, terms: List[str]) -> Tuple[int, List[str]]:
        """(score, matched terms) for one contact."""
        tokens = NameNormalizer.tokens(
            " ".join(filter(None, [contact.organization_name, contact.description, contact.category]))
        )
        matched = [t for t in terms if any(t in token for token in tokens)]

        score = self.TERM_SCORE * len(matched)
        if contact.emails:
            score += self.EMAIL_SCORE
        if contact.phone:
            score += self.PHONE_SCORE
        return score, matched

    def apply(
        self,
        contacts: List[MergedContact],
        query_terms: Iterable[str],
        limit: Optional[int] = None,
        drop: bool = True,
    ) -> RelevanceOutcome:
        """
        Score and filter contacts.

        Args:
            contacts: Deduplicated, contact-filtered contacts
            query_terms: Original query strings (or terms)
            limit: Keep at most this many contacts, in input order
            drop: When False, contacts are only scored; unmatched ones are
                kept and flag the outcome for review

        Returns:
            RelevanceOutcome
        """
        terms = self.terms(query_terms)
        outcome = RelevanceOutcome()

        if not terms:
            outcome.kept = list(contacts)
            outcome.reasons.append("no usable query terms; relevance not checked")
        else:
            relevant: List[MergedContact] = []
            scored_all: List[MergedContact] = []
            for contact in contacts:
                score, matched = self.score(contact, terms)
                scored = contact.model_copy(update={"relevance_score": score})
                scored_all.append(scored)
                if matched:
                    relevant.append(scored)
                else:
                    outcome.dropped.append(scored)
                    outcome.reasons.append(
                        f"{contact.organization_name}: no overlap with {', '.join(terms)}"
                    )

            if not drop and outcome.dropped:
                outcome.reasons.append(
                    f"{len(outcome.dropped)} of {len(contacts)} contacts unmatched; kept unfiltered"
                )
                outcome.kept = scored_all
                outcome.dropped = []
                outcome.needs_review = True
            elif contacts and len(outcome.dropped) / len(contacts) > self.max_drop_fraction:
                logger.warning(
                    "Relevance filter would drop %d of %d contacts; keeping all for review",
                    len(outcome.dropped), len(contacts),
                )
                outcome.reasons.append(
                    f"would drop {len(outcome.dropped)} of {len(contacts)} contacts "
                    f"(limit {self.max_drop_fraction:.0%}); nothing removed"
                )
                outcome.kept = scored_all
                outcome.dropped = []
                outcome.needs_review = True
            else:
                outcome.kept = relevant

        if limit is not None and len(outcome.kept) > limit:
            outcome.truncated = len(outcome.kept) - limit
            outcome.kept = outcome.kept[:limit]
        return outcome
