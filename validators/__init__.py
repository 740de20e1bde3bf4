"""
Validators package initialization.
"""

from .rules import ContactValidator, RecordValidator, ValidationResult, ValidationIssue
from .timestamp_utils import parse_timestamp

__all__ = [
    "ContactValidator",
    "RecordValidator",
    "ValidationResult",
    "ValidationIssue",
    "parse_timestamp",
]
