"""
Tests for the job client, run poller and result fetcher.
"""

import json
import threading
import time
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import FakeJobClient
from errors import (
    InvalidInputError,
    PreconditionError,
    ServiceUnavailableError,
    SubmissionError,
)
from jobs.client import (
    ApifyJobClient,
    RunSnapshot,
    build_contact_extraction_input,
    build_directory_search_input,
    get_job_client,
)
from jobs.fetcher import ResultFetcher
from jobs.poller import RunPoller
from jobs.rate_limit import SubmissionGate
from jobs.retry import RetryPolicy
from models.enums import RunStatus, Stage
from models.schema import BaseRecord, EnrichmentRecord, JobRun
from config import PipelineConfig


# ===================================================================
# Apify client
# ===================================================================


def make_client(handler):
    return ApifyJobClient(
        token="test-token",
        base_url="https://api.test/v2",
        gate=SubmissionGate(per_minute=100, max_concurrent=2),
        transport=httpx.MockTransport(handler),
    )


class TestApifyJobClient:

    def test_submit_directory_search(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"data": {"id": "run-1", "status": "READY"}})

        client = make_client(handler)
        run_id = client.submit(Stage.DIRECTORY_SEARCH, {
            "queries": ["gym"],
            "location": {"country_code": "AE", "city": "Dubai"},
            "maxResults": 20,
            "language": "en",
        })

        assert run_id == "run-1"
        assert seen["path"] == "/v2/acts/compass~crawler-google-places/runs"
        assert seen["auth"] == "Bearer test-token"
        assert seen["body"]["searchStringsArray"] == ["gym"]
        assert seen["body"]["maxCrawledPlacesPerSearch"] == 20
        assert seen["body"]["countryCode"] == "ae"
        assert seen["body"]["locationQuery"] == "Dubai"

    def test_submit_contact_extraction_uses_web_scraper(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"data": {"id": "run-2"}})

        make_client(handler).submit(Stage.CONTACT_EXTRACTION, {"urls": ["https://a.com"]})
        assert seen["path"] == "/v2/acts/apify~web-scraper/runs"
        assert seen["body"]["startUrls"] == [{"url": "https://a.com"}]
        assert seen["body"]["maxCrawlingDepth"] == 0

    def test_4xx_is_submission_error(self):
        client = make_client(lambda r: httpx.Response(400, json={"error": {"message": "Input is not valid"}}))
        with pytest.raises(SubmissionError) as exc:
            client.submit(Stage.CONTACT_EXTRACTION, {"urls": ["https://a.com"]})
        assert exc.value.status_code == 400
        assert "Input is not valid" in str(exc.value)

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_5xx_and_429_are_transient(self, status):
        client = make_client(lambda r: httpx.Response(status))
        with pytest.raises(ServiceUnavailableError):
            client.get_run("run-1")

    def test_transport_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        with pytest.raises(ServiceUnavailableError):
            make_client(handler).get_run("run-1")

    @pytest.mark.parametrize("raw,expected", [
        ("READY", RunStatus.SUBMITTED),
        ("RUNNING", RunStatus.RUNNING),
        ("SUCCEEDED", RunStatus.SUCCEEDED),
        ("FAILED", RunStatus.FAILED),
        ("ABORTED", RunStatus.FAILED),
        ("TIMED-OUT", RunStatus.FAILED),
    ])
    def test_status_mapping(self, raw, expected):
        client = make_client(lambda r: httpx.Response(
            200, json={"data": {"status": raw, "defaultDatasetId": "ds-9"}}
        ))
        snapshot = client.get_run("run-1")
        assert snapshot.status == expected
        assert (snapshot.result_ref == "ds-9") == (expected == RunStatus.SUCCEEDED)

    @pytest.mark.parametrize("body", [{"data": None}, {"data": "oops"}, ["not", "an", "object"], {}])
    def test_missing_data_object_is_transient(self, body):
        client = make_client(lambda r: httpx.Response(200, json=body))
        with pytest.raises(ServiceUnavailableError):
            client.get_run("run-1")
        with pytest.raises(ServiceUnavailableError):
            client.submit(Stage.CONTACT_EXTRACTION, {"urls": ["https://a.com"]})

    def test_get_items_reads_pagination_total(self):
        def handler(request):
            assert request.url.params["offset"] == "250"
            assert request.url.params["limit"] == "250"
            return httpx.Response(200, json=[{"title": "A"}], headers={"X-Apify-Pagination-Total": "251"})

        page = make_client(handler).get_items("ds-1", 250, 250)
        assert page.items == [{"title": "A"}]
        assert page.total == 251

    def test_requires_token(self):
        with pytest.raises(PreconditionError):
            ApifyJobClient(token=None)

    def test_factory_uses_config(self):
        client = get_job_client(PipelineConfig(apify_token="tok"))
        assert isinstance(client, ApifyJobClient)
        client.close()
        with pytest.raises(ValueError):
            get_job_client(provider="nope")


class TestInputBuilders:

    def test_directory_input_limits(self):
        with pytest.raises(InvalidInputError):
            build_directory_search_input({"queries": []})
        with pytest.raises(InvalidInputError):
            build_directory_search_input({"queries": ["q"] * 11})
        with pytest.raises(InvalidInputError):
            build_directory_search_input({"queries": ["q"], "language": "english"})

    def test_places_per_search_capped(self):
        actor_input = build_directory_search_input({"queries": ["gym"], "maxResults": 5000})
        assert actor_input["maxCrawledPlacesPerSearch"] == 1000

    def test_contact_input_needs_urls(self):
        with pytest.raises(InvalidInputError):
            build_contact_extraction_input({"urls": []})


# ===================================================================
# Run poller
# ===================================================================


class TestRunPoller:

    def setup_method(self):
        self.client = FakeJobClient()

    def _poller(self, clock, max_retries=3):
        retry = RetryPolicy(max_retries=max_retries, sleep=clock.sleep)
        return RunPoller(self.client, poll_interval=5, retry=retry, clock=clock, sleep=clock.sleep)

    def _run(self, stage=Stage.DIRECTORY_SEARCH):
        run_id = self.client.submit(stage, {})
        return JobRun(stage=stage, external_run_id=run_id)

    def test_polls_until_succeeded(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [RunStatus.RUNNING, RunStatus.RUNNING, RunStatus.SUCCEEDED])
        run = self._poller(clock).await_completion(self._run(), stage_timeout=600)
        assert run.status == RunStatus.SUCCEEDED
        assert run.result_ref == "ds-directory_search"
        assert run.polls == 3
        assert clock.sleeps == [5, 5]

    def test_failed_run(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [RunSnapshot(RunStatus.FAILED, status_message="actor crashed")])
        run = self._poller(clock).await_completion(self._run(), stage_timeout=600)
        assert run.status == RunStatus.FAILED
        assert run.status_message == "actor crashed"

    def test_timeout_leaves_run_timed_out(self, clock):
        self.client.script(Stage.CONTACT_EXTRACTION, [RunStatus.RUNNING])
        run = self._poller(clock).await_completion(self._run(Stage.CONTACT_EXTRACTION), stage_timeout=30)
        assert run.status == RunStatus.TIMED_OUT
        assert clock.now == 30

    def test_transient_poll_errors_are_retried(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [
            ServiceUnavailableError("502"), RunStatus.SUCCEEDED,
        ])
        run = self._poller(clock).await_completion(self._run(), stage_timeout=600)
        assert run.status == RunStatus.SUCCEEDED

    def test_exhausted_retries_fail_the_run(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [ServiceUnavailableError("502")])
        run = self._poller(clock, max_retries=2).await_completion(self._run(), stage_timeout=600)
        assert run.status == RunStatus.FAILED
        assert "status unavailable" in run.status_message

    def test_rejected_status_request_fails_the_run(self, clock):
        self.client.script(Stage.CONTACT_EXTRACTION, [SubmissionError("run not found", status_code=404)])
        run = self._poller(clock).await_completion(self._run(Stage.CONTACT_EXTRACTION), stage_timeout=600)
        assert run.status == RunStatus.FAILED
        assert "run not found" in run.status_message
        assert clock.sleeps == []

    def test_retry_backoff_is_capped_by_deadline(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [ServiceUnavailableError("502")])
        retry = RetryPolicy(max_retries=3, backoff_base=100.0, backoff_max=100.0, sleep=clock.sleep)
        poller = RunPoller(self.client, poll_interval=5, retry=retry, clock=clock, sleep=clock.sleep)
        run = poller.await_completion(self._run(), stage_timeout=30)
        assert run.status == RunStatus.FAILED
        assert sum(clock.sleeps) == 30

    def test_abort_stops_immediately(self, clock):
        self.client.script(Stage.DIRECTORY_SEARCH, [RunStatus.RUNNING])
        cancel = threading.Event()
        cancel.set()
        run = self._poller(clock).await_completion(self._run(), stage_timeout=600, cancel=cancel)
        assert run.status == RunStatus.FAILED
        assert run.status_message == "aborted"
        assert self.client.polls == {}

    def test_abort_wakes_event_wait(self):
        self.client.script(Stage.DIRECTORY_SEARCH, [RunStatus.RUNNING])
        cancel = threading.Event()
        poller = RunPoller(self.client, poll_interval=30, retry=RetryPolicy())
        threading.Timer(0.1, cancel.set).start()
        run = poller.await_completion(self._run(), stage_timeout=600, cancel=cancel)
        assert run.status_message == "aborted"

    def test_abort_interrupts_retry_backoff(self):
        cancel = threading.Event()
        calls = []

        def get_run(run_id):
            calls.append(run_id)
            cancel.set()
            raise ServiceUnavailableError("503")

        client = MagicMock()
        client.get_run.side_effect = get_run
        retry = RetryPolicy(max_retries=5, backoff_base=60.0, backoff_max=60.0)
        poller = RunPoller(client, poll_interval=30, retry=retry)
        started = time.monotonic()

        run = poller.await_completion(JobRun(stage=Stage.DIRECTORY_SEARCH, external_run_id="r1"), 600, cancel)

        assert run.status_message == "aborted"
        assert calls == ["r1"]
        assert time.monotonic() - started < 5


# ===================================================================
# Result fetcher
# ===================================================================


class TestResultFetcher:

    def setup_method(self):
        self.client = FakeJobClient()

    def _succeeded_run(self, stage):
        run = JobRun(stage=stage, external_run_id=self.client.submit(stage, {}))
        run.advance(RunStatus.SUCCEEDED, result_ref=f"ds-{stage.value}")
        return run

    def test_paginates_in_order(self):
        items = [{"title": f"Org {i}", "website": f"https://org{i}.com"} for i in range(7)]
        self.client.script(Stage.DIRECTORY_SEARCH, [RunStatus.SUCCEEDED], items)
        fetcher = ResultFetcher(self.client, page_size=3)

        records = fetcher.fetch(self._succeeded_run(Stage.DIRECTORY_SEARCH))

        assert [r.organization_name for r in records] == [f"Org {i}" for i in range(7)]
        assert all(isinstance(r, BaseRecord) for r in records)
        assert [r.retrieval_index for r in records] == list(range(7))

    def test_max_items_bounds_the_fetch(self):
        items = [{"title": f"Org {i}"} for i in range(10)]
        self.client.script(Stage.DIRECTORY_SEARCH, [RunStatus.SUCCEEDED], items)
        fetcher = ResultFetcher(self.client, page_size=4, max_items=6)
        assert len(fetcher.fetch_raw(self._succeeded_run(Stage.DIRECTORY_SEARCH))) == 6

    def test_enrichment_records_and_report(self):
        items = [{"url": "https://a.com", "allEmails": ["a@a.com"]}, "garbage"]
        self.client.script(Stage.CONTACT_EXTRACTION, [RunStatus.SUCCEEDED], items)
        records, report = ResultFetcher(self.client).fetch_with_report(
            self._succeeded_run(Stage.CONTACT_EXTRACTION)
        )
        assert len(records) == 1
        assert isinstance(records[0], EnrichmentRecord)
        assert len(report.errors) == 1

    def test_requires_succeeded_run(self):
        run = JobRun(stage=Stage.DIRECTORY_SEARCH, external_run_id="r1")
        with pytest.raises(PreconditionError):
            ResultFetcher(self.client).fetch(run)
