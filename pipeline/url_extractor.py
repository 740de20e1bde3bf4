"""
URL Extractor: chooses the websites worth sending to contact extraction.

Excluded:
  - non-http(s) schemes
  - social networks
  - mapping services
  - direct file links (images, documents, archives, media)
Subdomains of an excluded domain are excluded too.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from normalizer.engine import UrlNormalizer

logger = logging.getLogger(__name__)

SOCIAL_DOMAINS: Set[str] = {
    "facebook.com",
    "fb.com",
    "instagram.com",
    "linkedin.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "youtube.com",
    "youtu.be",
    "vk.com",
    "ok.ru",
    "pinterest.com",
    "t.me",
    "wa.me",
}

MAPPING_DOMAINS: Set[str] = {
    "maps.google.com",
    "maps.app.goo.gl",
    "yandex.ru/maps",
    "yandex.com/maps",
    "google.com/maps",
    "goo.gl/maps",
    "2gis.ru",
    "2gis.com",
    "2gis.ae",
}

# google.<tld>/maps, including country domains such as google.co.uk/maps
_GOOGLE_MAPS_RE = re.compile(r"^google\.[a-z]{2,3}(\.[a-z]{2})?$")

FILE_EXTENSION_RE = re.compile(
    r"\.(jpe?g|png|gif|webp|svg|bmp|ico|pdf|docx?|xlsx?|pptx?|zip|rar|7z|gz|mp4|mp3|avi|mov|wav)$",
    re.IGNORECASE,
)

_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.-]*):", re.IGNORECASE)


def _domain_matches(host: str, path: str, domain_set: Set[str]) -> Optional[str]:
    """
    Return the entry of `domain_set` that the URL falls under, if any.
    Entries may carry a path prefix ("google.com/maps").
    Supports suffix matching ("m.facebook.com" matches "facebook.com").
    """
    for entry in domain_set:
        domain, _, prefix = entry.partition("/")
        if host != domain and not host.endswith("." + domain):
            continue
        if prefix and not (path == "/" + prefix or path.startswith("/" + prefix + "/")):
            continue
        return entry
    return None


class UrlExtractor:
    """Select scrapeable, deduplicated website URLs from base records."""

    def exclusion_reason(self, url: Optional[str]) -> Optional[str]:
        """Why `url` must not be scraped, or None when it is fine."""
        if not url or not url.strip():
            return "empty url"
        text = url.strip()

        match = _SCHEME_RE.match(text)
        if "://" in text or (match and not text[match.end():match.end() + 1].isdigit()):
            scheme = match.group(1).lower() if match else ""
            if scheme not in ("http", "https"):
                return f"unsupported scheme: {scheme or 'none'}"
        else:
            text = "http://" + text

        try:
            parts = urlsplit(text)
            host = (parts.hostname or "").lower()
        except ValueError:
            return "invalid url"
        if not host or "." not in host:
            return "invalid url"
        if host.startswith("www."):
            host = host[4:]
        path = parts.path.lower()

        social = _domain_matches(host, path, SOCIAL_DOMAINS)
        if social:
            return f"social media: {social}"
        mapping = _domain_matches(host, path, MAPPING_DOMAINS)
        if mapping or (_GOOGLE_MAPS_RE.match(host) and (path == "/maps" or path.startswith("/maps/"))):
            return f"mapping service: {mapping or host + '/maps'}"
        if FILE_EXTENSION_RE.search(path):
            return "file link"
        return None

    def is_scrapeable(self, url: Optional[str]) -> bool:
        return self.exclusion_reason(url) is None

    def partition(self, records: Iterable) -> Tuple[List[str], List[Tuple[str, str]]]:
        """
        Split record websites into (urls to scrape, [(url, exclusion reason)]).

        Records without a website are skipped silently.
        """
        urls: List[str] = []
        excluded: List[Tuple[str, str]] = []
        seen: Set[str] = set()

        for record in records:
            website = record if isinstance(record, str) else getattr(record, "website", None)
            if not website:
                continue
            reason = self.exclusion_reason(website)
            if reason:
                excluded.append((website, reason))
                continue

            url = website.strip()
            if "://" not in url:
                url = "http://" + url
            key = UrlNormalizer.identity_key(url)
            if key in seen:
                continue
            seen.add(key)
            urls.append(url)

        if excluded:
            logger.info("Excluded %d of %d websites from extraction", len(excluded), len(excluded) + len(urls))
        return urls, excluded

    def extract(self, records: Iterable) -> List[str]:
        urls, _ = self.partition(records)
        return urls
