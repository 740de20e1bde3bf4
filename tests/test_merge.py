"""
Tests for the merge engine.
"""

import pytest

from models.enums import DataSource
from models.schema import BaseRecord, EnrichmentRecord
from pipeline.merge import EXTRACTION_UNAVAILABLE, MergeEngine


@pytest.fixture
def engine():
    return MergeEngine()


class TestIdentityKey:

    def test_website_first(self, engine):
        record = BaseRecord(organization_name="A", website="https://www.A.com/", place_id="p1")
        assert engine.identity_key(record) == "a.com"

    def test_place_id_fallback(self, engine):
        assert engine.identity_key(BaseRecord(organization_name="A", place_id="p1")) == "place:p1"

    def test_name_fallback(self, engine):
        assert engine.identity_key(BaseRecord(organization_name="  Acme   Gym ")) == "name:acme gym"


def test_emails_unioned_case_insensitively_across_www_and_scheme(engine):
    base = [BaseRecord(organization_name="Example", website="http://Example.com/")]
    enrichment = [EnrichmentRecord(source_url="https://www.example.com", emails=["A@x.com", "a@x.com", "b@x.com"])]

    [contact] = engine.merge(base, enrichment)

    assert contact.emails == ["a@x.com", "b@x.com"]
    assert contact.primary_email == "a@x.com"
    assert contact.has_contact_info
    assert contact.data_source == DataSource.DIRECTORY_WITH_ENRICHMENT


def test_record_without_website_has_no_contact_info(engine):
    [contact] = engine.merge([BaseRecord(organization_name="No Site")], [])
    assert contact.has_contact_info is False
    assert contact.emails == []
    assert contact.description == EXTRACTION_UNAVAILABLE
    assert contact.data_source == DataSource.DIRECTORY_ONLY


def test_multiple_rows_per_url_are_unioned(engine):
    base = [BaseRecord(organization_name="Big", website="https://big.com")]
    enrichment = [
        EnrichmentRecord(source_url="https://big.com", emails=["one@big.com", "two@big.com"], description="Big corp"),
        EnrichmentRecord(source_url="https://big.com/", emails=["three@big.com", "ONE@big.com"]),
    ]
    [contact] = engine.merge(base, enrichment)
    assert contact.emails == ["one@big.com", "two@big.com", "three@big.com"]
    assert contact.description == "Big corp"


def test_failed_rows_contribute_no_emails_but_keep_note(engine):
    base = [BaseRecord(organization_name="Flaky", website="https://flaky.com")]
    enrichment = [
        EnrichmentRecord(source_url="https://flaky.com", emails=["bad@flaky.com"], extraction_error="blocked"),
        EnrichmentRecord(source_url="https://flaky.com", emails=["ok@flaky.com"]),
    ]
    [contact] = engine.merge(base, enrichment)
    assert contact.emails == ["ok@flaky.com"]
    assert contact.extraction_error == "blocked"


def test_all_rows_failed_degrades_record(engine):
    base = [BaseRecord(organization_name="Down", website="https://down.com")]
    enrichment = [EnrichmentRecord(source_url="https://down.com", extraction_error="timeout")]
    [contact] = engine.merge(base, enrichment)
    assert contact.has_contact_info is False
    assert contact.emails == []
    assert "timeout" in contact.description


def test_description_email_counts_as_contact_info(engine):
    base = [BaseRecord(organization_name="Desc", website="https://desc.com")]
    enrichment = [EnrichmentRecord(source_url="https://desc.com", description="Email us at hi@desc.com")]
    [contact] = engine.merge(base, enrichment)
    assert contact.emails == []
    assert contact.has_contact_info


def test_one_contact_per_base_record(engine):
    base = [
        BaseRecord(organization_name="A", website="https://a.com"),
        BaseRecord(organization_name="B"),
        BaseRecord(organization_name="C", website="https://c.com"),
    ]
    enrichment = [EnrichmentRecord(source_url="https://unrelated.com", emails=["x@u.com"])]
    contacts = engine.merge(base, enrichment)
    assert [c.organization_name for c in contacts] == ["A", "B", "C"]
    assert not any(c.has_contact_info for c in contacts)


def test_merge_is_idempotent(engine):
    base = [
        BaseRecord(organization_name="A", website="https://a.com"),
        BaseRecord(organization_name="B", place_id="p-b"),
    ]
    enrichment = [EnrichmentRecord(source_url="https://a.com", emails=["x@a.com"], country="AE")]
    first = engine.merge(base, enrichment)
    second = engine.merge(base, enrichment)
    assert [c.model_dump_json() for c in first] == [c.model_dump_json() for c in second]


def test_fallback_carries_reason(engine):
    base = [BaseRecord(organization_name="A", website="https://a.com"), BaseRecord(organization_name="B")]
    contacts = engine.fallback(base, "contact extraction timed out")
    assert len(contacts) == 2
    assert all(not c.has_contact_info for c in contacts)
    assert contacts[0].description == "extraction unavailable: contact extraction timed out"
    assert contacts[0].extraction_error == "contact extraction timed out"
