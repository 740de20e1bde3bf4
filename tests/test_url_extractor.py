"""
Tests for the URL extractor.
"""

import pytest

from models.schema import BaseRecord
from pipeline.url_extractor import UrlExtractor


@pytest.fixture
def extractor():
    return UrlExtractor()


def records(*websites):
    return [BaseRecord(organization_name=f"Org {i}", website=w) for i, w in enumerate(websites)]


def test_social_and_file_links_excluded(extractor):
    urls = extractor.extract(records("https://a.com", "https://facebook.com/x", "https://a.com/logo.png"))
    assert urls == ["https://a.com"]


def test_dedupes_by_identity_key(extractor):
    urls = extractor.extract(records("https://a.com/", "http://www.A.com", "https://b.com"))
    assert urls == ["https://a.com/", "https://b.com"]


def test_records_without_website_are_omitted(extractor):
    urls = extractor.extract(records(None, "https://b.com"))
    assert urls == ["https://b.com"]


def test_missing_scheme_gets_http(extractor):
    assert extractor.extract(records("shop.example")) == ["http://shop.example"]


@pytest.mark.parametrize("url", [
    "https://m.facebook.com/acme",
    "https://www.instagram.com/acme",
    "https://x.com/acme",
    "https://www.google.com/maps/place/acme",
    "https://www.google.ae/maps/place/acme",
    "https://maps.app.goo.gl/abc",
    "https://goo.gl/maps/abc",
    "https://acme.com/brochure.PDF",
    "ftp://acme.com",
    "mailto:info@acme.com",
    "javascript:void(0)",
])
def test_not_scrapeable(extractor, url):
    assert not extractor.is_scrapeable(url)


@pytest.mark.parametrize("url", [
    "https://acme.com",
    "https://acme.com/contact",
    "https://google-fans.com/maps",
    "http://acme.com:8080/",
])
def test_scrapeable(extractor, url):
    assert extractor.is_scrapeable(url)


def test_exclusion_reasons(extractor):
    assert extractor.exclusion_reason("https://facebook.com/x").startswith("social media")
    assert extractor.exclusion_reason("https://maps.google.com/?q=1").startswith("mapping service")
    assert extractor.exclusion_reason("https://a.com/logo.png") == "file link"
    assert extractor.exclusion_reason("https://a.com") is None


def test_partition_reports_exclusions(extractor):
    urls, excluded = extractor.partition(records("https://a.com", "https://tiktok.com/@acme"))
    assert urls == ["https://a.com"]
    assert excluded == [("https://tiktok.com/@acme", "social media: tiktok.com")]
