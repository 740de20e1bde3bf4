"""
Tests for PipelineConfig.
"""

import pytest

import config as config_module
from config import PipelineConfig
from errors import InvalidInputError


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda *a, **kw: False)
    for name in [
        "APIFY_API_TOKEN", "STAGE1_TIMEOUT_SECONDS", "STAGE2_TIMEOUT_SECONDS",
        "POLL_INTERVAL_SECONDS", "MAX_RETRIES", "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY", "MAX_RELEVANCE_DROP",
    ]:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = PipelineConfig.from_env()
    assert config.apify_base_url == "https://api.apify.com/v2"
    assert config.directory_actor == "compass~crawler-google-places"
    assert config.contact_actor == "apify~web-scraper"
    assert config.poll_interval == 5.0
    assert config.max_concurrent_tasks == 2
    assert not config.has_supabase


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("APIFY_API_TOKEN", "tok")
    monkeypatch.setenv("STAGE2_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

    config = PipelineConfig.from_env()
    assert config.apify_token == "tok"
    assert config.contact_timeout == 90.0
    assert config.max_retries == 5
    assert config.supabase_key == "anon"
    assert config.has_supabase


def test_malformed_number(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "soon")
    with pytest.raises(InvalidInputError):
        PipelineConfig.from_env()


@pytest.mark.parametrize("overrides", [
    {"poll_interval": 0},
    {"directory_timeout": -1},
    {"max_retries": 0},
    {"max_relevance_drop": 1.5},
])
def test_validate_rejects(overrides):
    with pytest.raises(InvalidInputError):
        PipelineConfig(**overrides).validate()
