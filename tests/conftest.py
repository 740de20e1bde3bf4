"""
Shared fixtures: an in-memory job client and a manual clock.
"""

from typing import Any, Dict, List, Optional

import pytest

from jobs.client import ItemPage, JobClient, RunSnapshot
from jobs.rate_limit import reset_submission_gate
from models.enums import RunStatus, Stage
from models.schema import BaseRecord, EnrichmentRecord


class FakeClock:
    """Manual clock; `sleep` advances it instead of blocking."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeJobClient(JobClient):
    """
    Scripted job client.

    For each stage, `script(stage, observations, items)` sets the status
    observations returned by successive `get_run` calls (the last one
    repeats) and the items of the result set. An observation may be an
    exception instance, which is raised instead.
    """

    def __init__(self):
        self.submissions: List[Dict[str, Any]] = []
        self.polls: Dict[str, int] = {}
        self._observations: Dict[Stage, List[Any]] = {}
        self._items: Dict[str, List[Any]] = {}
        self._submit_errors: Dict[Stage, Exception] = {}
        self._runs: Dict[str, Stage] = {}

    def script(self, stage: Stage, observations: List[Any], items: Optional[List[Any]] = None) -> None:
        self._observations[stage] = list(observations)
        self._items[f"ds-{stage.value}"] = list(items or [])

    def fail_submit(self, stage: Stage, error: Exception) -> None:
        self._submit_errors[stage] = error

    def submit(self, stage: Stage, payload: Dict[str, Any]) -> str:
        if stage in self._submit_errors:
            raise self._submit_errors[stage]
        run_id = f"run-{stage.value}-{len(self.submissions)}"
        self.submissions.append({"stage": stage, "payload": payload, "run_id": run_id})
        self._runs[run_id] = stage
        return run_id

    def get_run(self, run_id: str) -> RunSnapshot:
        stage = self._runs[run_id]
        count = self.polls.get(run_id, 0)
        self.polls[run_id] = count + 1
        observations = self._observations.get(stage) or [RunStatus.SUCCEEDED]
        observation = observations[min(count, len(observations) - 1)]
        if isinstance(observation, Exception):
            raise observation
        if isinstance(observation, RunSnapshot):
            return observation
        result_ref = f"ds-{stage.value}" if observation == RunStatus.SUCCEEDED else None
        return RunSnapshot(status=observation, result_ref=result_ref)

    def get_items(self, result_ref: str, offset: int, limit: int) -> ItemPage:
        items = self._items.get(result_ref, [])
        return ItemPage(items=items[offset:offset + limit], total=len(items))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def job_client():
    return FakeJobClient()


@pytest.fixture(autouse=True)
def _fresh_submission_gate():
    reset_submission_gate()
    yield
    reset_submission_gate()


@pytest.fixture
def base_record():
    def make(name="Acme Gym", website="https://acme.example", **kwargs):
        return BaseRecord(organization_name=name, website=website, **kwargs)
    return make


@pytest.fixture
def enrichment_record():
    def make(source_url="https://acme.example", emails=None, **kwargs):
        return EnrichmentRecord(source_url=source_url, emails=emails or [], **kwargs)
    return make
