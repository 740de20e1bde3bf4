"""
Normalization engine for organization and contact data.

Everything here is a pure string function so that the models, the
merge engine and the filters agree on one definition of "same website",
"same email" and "same word".
"""

import re
from typing import Iterable, List, Optional
from urllib.parse import urlsplit


EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_EMAIL_FULL_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")

# Image names like logo@2x.png look like emails to the regex above
_FAKE_EMAIL_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".css", ".js", ".pdf")

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


class UrlNormalizer:
    """Normalizes website URLs into identity keys."""

    @staticmethod
    def identity_key(url: Optional[str]) -> Optional[str]:
        """
        Derive the identity key of a website URL.

        - lower-cased
        - scheme, leading `www.` and trailing slashes removed
        - query string and fragment dropped

        Returns None when the URL has no usable host.

        >>> UrlNormalizer.identity_key("http://Example.com/")
        'example.com'
        """
        if not url:
            return None
        text = url.strip().lower()
        if not text:
            return None
        if "://" not in text:
            text = "http://" + text
        try:
            parts = urlsplit(text)
            port = parts.port
        except ValueError:
            return None
        host = parts.hostname or ""
        if not host:
            return None
        if host.startswith("www."):
            host = host[4:]
        if port and port not in (80, 443):
            host = f"{host}:{port}"
        path = parts.path.rstrip("/")
        return f"{host}{path}"

    @staticmethod
    def host(url: Optional[str]) -> str:
        """Lower-cased host without `www.`, or empty string."""
        if not url:
            return ""
        text = url.strip()
        if "://" not in text:
            text = "http://" + text
        try:
            host = urlsplit(text).hostname or ""
        except ValueError:
            return ""
        host = host.lower()
        if host.startswith("www."):
            host = host[4:]
        return host


class EmailNormalizer:
    """Normalizes and deduplicates email addresses."""

    @staticmethod
    def normalize(email: Optional[str]) -> Optional[str]:
        """
        Normalize a single address.

        Strips whitespace and `mailto:` prefixes, drops `?subject=...`
        suffixes and lower-cases. Returns None for anything that is not
        email-shaped.
        """
        if not email or not isinstance(email, str):
            return None
        value = email.strip()
        if value.lower().startswith("mailto:"):
            value = value[len("mailto:"):]
        value = value.split("?", 1)[0].strip().strip(".,;:<>()[]\"'").lower()
        if not _EMAIL_FULL_RE.match(value):
            return None
        if value.endswith(_FAKE_EMAIL_SUFFIXES):
            return None
        return value

    @classmethod
    def dedupe(cls, emails: Optional[Iterable[str]]) -> List[str]:
        """Case-insensitive, order-preserving deduplication."""
        result: List[str] = []
        seen = set()
        for raw in emails or []:
            email = cls.normalize(raw)
            if email and email not in seen:
                seen.add(email)
                result.append(email)
        return result

    @classmethod
    def union(cls, *groups: Iterable[str]) -> List[str]:
        """Union of several email lists, first-seen order."""
        merged: List[str] = []
        for group in groups:
            merged.extend(group or [])
        return cls.dedupe(merged)

    @staticmethod
    def contains_email(text: Optional[str]) -> bool:
        """True if the text embeds an email-shaped token."""
        if not text:
            return False
        for match in EMAIL_RE.finditer(text):
            if not match.group(0).lower().endswith(_FAKE_EMAIL_SUFFIXES):
                return True
        return False


class NameNormalizer:
    """Normalizes names and free text for matching."""

    @staticmethod
    def normalize_name(name: Optional[str]) -> str:
        """
        Normalize a name field.

        - Trim whitespace
        - Collapse internal whitespace
        """
        if not name:
            return ""
        return re.sub(r"\s+", " ", name).strip()

    @staticmethod
    def tokens(text: Optional[str]) -> List[str]:
        """Lower-cased word tokens (unicode aware)."""
        if not text:
            return []
        return _TOKEN_RE.findall(text.lower())
