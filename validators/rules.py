"""
Validation rules for job-service payloads and merged contacts.

Items returned by the job service are loosely-typed JSON. They are turned
into typed records here, at the fetch boundary; anything that does not
fit the expected shape is rejected and reported, never passed through.
"""

import logging
from typing import List, Dict, Any, Optional, Tuple, Iterable
from dataclasses import dataclass, field

from pydantic import ValidationError

from models.schema import BaseRecord, EnrichmentRecord, MergedContact
from normalizer.engine import NameNormalizer
from .timestamp_utils import parse_timestamp

logger = logging.getLogger(__name__)

# Placeholders the extractor writes when it finds nothing
_EMPTY_MARKERS = {"", "not specified", "no description", "unknown", "n/a", "none", "null"}


@dataclass
class ValidationIssue:
    """A single validation issue."""
    severity: str  # "error" or "warning"
    message: str
    item_index: Optional[int] = None
    identity_key: Optional[str] = None
    field: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of validation."""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if validation passed (no errors, warnings allowed)."""
        return len(self.errors) == 0

    @property
    def total_issues(self) -> int:
        """Total number of issues."""
        return len(self.errors) + len(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage/display."""
        return {
            "is_valid": self.is_valid,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": [_issue_dict(e) for e in self.errors],
            "warnings": [_issue_dict(w) for w in self.warnings],
        }


def _issue_dict(issue: ValidationIssue) -> Dict[str, Any]:
    return {
        "message": issue.message,
        "item_index": issue.item_index,
        "identity_key": issue.identity_key,
        "field": issue.field,
    }


def _text(item: Dict[str, Any], *keys: str) -> Optional[str]:
    """First non-placeholder string among `keys`."""
    for key in keys:
        value = item.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = NameNormalizer.normalize_name(value)
            if value.lower() not in _EMPTY_MARKERS:
                return value
    return None


def _number(item: Dict[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        value = item.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []


class RecordValidator:
    """Parses raw job-service items into typed records."""

    def parse_base_records(
        self,
        items: Iterable[Any],
        start_index: int = 0,
    ) -> Tuple[List[BaseRecord], ValidationResult]:
        """
        Parse directory-search items.

        Args:
            items: Raw items in retrieval order
            start_index: Retrieval index of the first item

        Returns:
            (records, validation result); rejected items only appear as errors
        """
        records: List[BaseRecord] = []
        result = ValidationResult()

        for offset, item in enumerate(items):
            index = start_index + offset
            if not isinstance(item, dict):
                result.errors.append(ValidationIssue(
                    severity="error",
                    message=f"Expected an object, got {type(item).__name__}",
                    item_index=index,
                ))
                continue

            name = _text(item, "title", "name", "organizationName")
            if not name:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message="Directory item has no organization name",
                    item_index=index,
                    field="title",
                ))
                continue

            rating = _number(item, "totalScore", "rating")
            if rating is not None and not 0 <= rating <= 5:
                result.warnings.append(ValidationIssue(
                    severity="warning",
                    message=f"Rating {rating} out of range, ignored",
                    item_index=index,
                    field="rating",
                ))
                rating = None

            reviews = _number(item, "reviewsCount", "reviewCount")
            location = item.get("location") if isinstance(item.get("location"), dict) else {}

            try:
                record = BaseRecord(
                    organization_name=name,
                    address=_text(item, "address", "street") or _text(location, "address"),
                    phone=_text(item, "phone", "phoneUnformatted", "phoneNumber"),
                    website=_text(item, "website"),
                    category=_text(item, "categoryName", "category"),
                    place_id=_text(item, "placeId", "place_id", "cid"),
                    rating=rating,
                    reviews_count=int(reviews) if reviews is not None and reviews >= 0 else None,
                    google_maps_url=_text(item, "url", "googleMapsUrl"),
                    retrieval_index=index,
                )
            except ValidationError as e:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message=f"Invalid directory item: {e.errors()[0]['msg']}",
                    item_index=index,
                ))
                continue

            if not record.website and not record.place_id:
                result.warnings.append(ValidationIssue(
                    severity="warning",
                    message=f"'{name}' has neither website nor place id",
                    item_index=index,
                    field="website",
                ))
            records.append(record)

        if result.errors:
            logger.warning("Rejected %d directory items", len(result.errors))
        return records, result

    def parse_enrichment_records(
        self,
        items: Iterable[Any],
        start_index: int = 0,
    ) -> Tuple[List[EnrichmentRecord], ValidationResult]:
        """
        Parse contact-extraction items.

        Args:
            items: Raw items in retrieval order
            start_index: Retrieval index of the first item

        Returns:
            (records, validation result)
        """
        records: List[EnrichmentRecord] = []
        result = ValidationResult()

        for offset, item in enumerate(items):
            index = start_index + offset
            if not isinstance(item, dict):
                result.errors.append(ValidationIssue(
                    severity="error",
                    message=f"Expected an object, got {type(item).__name__}",
                    item_index=index,
                ))
                continue

            source_url = _text(item, "sourceUrl", "source_url", "url", "website")
            if not source_url:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message="Extraction item has no source url",
                    item_index=index,
                    field="url",
                ))
                continue

            emails = _string_list(item.get("allEmails")) + _string_list(item.get("emails"))
            single = item.get("email")
            if isinstance(single, str):
                emails.insert(0, single)

            error = _text(item, "scrapingError", "extractionError", "error")
            scraped_at = parse_timestamp(item.get("scrapedAt") or item.get("scraped_at"))

            fields: Dict[str, Any] = {
                "source_url": source_url,
                "emails": emails,
                "description": _text(item, "description"),
                "country": _text(item, "country"),
                "page_title": _text(item, "pageTitle", "title", "organizationName"),
                "extraction_error": error,
                "retrieval_index": index,
            }
            if scraped_at:
                fields["scraped_at"] = scraped_at

            try:
                record = EnrichmentRecord(**fields)
            except ValidationError as e:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message=f"Invalid extraction item: {e.errors()[0]['msg']}",
                    item_index=index,
                ))
                continue

            if record.failed:
                result.warnings.append(ValidationIssue(
                    severity="warning",
                    message=f"Extraction failed for {source_url}: {error}",
                    item_index=index,
                    field="extraction_error",
                ))
            records.append(record)

        if result.errors:
            logger.warning("Rejected %d extraction items", len(result.errors))
        return records, result


class ContactValidator:
    """Checks the invariants of a merged contact set."""

    def validate_contacts(
        self,
        contacts: List[MergedContact],
        base_count: Optional[int] = None,
    ) -> ValidationResult:
        """
        Validate merged contacts.

        Args:
            contacts: Output of merge/dedup
            base_count: Number of base records the contacts came from

        Returns:
            ValidationResult with all errors and warnings
        """
        result = ValidationResult()

        keys = [c.identity_key for c in contacts]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            result.errors.append(ValidationIssue(
                severity="error",
                message=f"Duplicate identity keys found: {', '.join(duplicates)}",
                field="identity_key",
            ))

        if base_count is not None and len(contacts) > base_count:
            result.errors.append(ValidationIssue(
                severity="error",
                message=f"{len(contacts)} contacts from only {base_count} base records",
            ))

        for contact in contacts:
            lowered = [e.lower() for e in contact.emails]
            if len(set(lowered)) != len(lowered):
                result.errors.append(ValidationIssue(
                    severity="error",
                    message="Emails contain case-insensitive duplicates",
                    identity_key=contact.identity_key,
                    field="emails",
                ))
            if contact.primary_email is not None and contact.primary_email not in contact.emails:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message=f"Primary email {contact.primary_email} is not among emails",
                    identity_key=contact.identity_key,
                    field="primary_email",
                ))
            if contact.emails and contact.primary_email is None:
                result.errors.append(ValidationIssue(
                    severity="error",
                    message="Emails present but no primary email",
                    identity_key=contact.identity_key,
                    field="primary_email",
                ))
            if contact.extraction_error and not contact.emails:
                result.warnings.append(ValidationIssue(
                    severity="warning",
                    message=f"Extraction error: {contact.extraction_error}",
                    identity_key=contact.identity_key,
                    field="extraction_error",
                ))

        return result
