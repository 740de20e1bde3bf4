"""
Normalizer package initialization.
"""

from .engine import EMAIL_RE, EmailNormalizer, NameNormalizer, UrlNormalizer

__all__ = [
    "EMAIL_RE",
    "EmailNormalizer",
    "NameNormalizer",
    "UrlNormalizer",
]
