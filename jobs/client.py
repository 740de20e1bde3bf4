"""
JobClient ABC and the Apify implementation.

A job client speaks a three-call contract with the job-execution service:
submit a stage payload, read a run's status, read a page of its results.
It never waits for a run to finish; that is the poller's job.

Stage payloads are service-neutral:
  - directory search:   {queries, location, maxResults, language}
  - contact extraction: {urls}
and are mapped to actor input here.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from errors import (
    InvalidInputError,
    PreconditionError,
    ServiceUnavailableError,
    SubmissionError,
)
from models.enums import RunStatus, Stage
from .rate_limit import SubmissionGate, get_submission_gate

logger = logging.getLogger(__name__)

MAX_QUERIES = 10
MAX_QUERY_LENGTH = 2000
MAX_PLACES_PER_SEARCH = 1000
_LANGUAGE_RE = re.compile(r"^[a-z]{2}$")

EXCLUDED_FILE_GLOB = "/**/*.{jpg,jpeg,png,gif,pdf,doc,docx,zip,mp4,mp3,css,js}"


# ------------------------------------------------------------------
# Data classes
# ------------------------------------------------------------------

@dataclass
class RunSnapshot:
    """One observation of a remote run."""

    status: RunStatus
    result_ref: Optional[str] = None
    status_message: Optional[str] = None


@dataclass
class ItemPage:
    """A page of result items."""

    items: List[Any] = field(default_factory=list)
    total: int = 0


# ------------------------------------------------------------------
# Abstract client
# ------------------------------------------------------------------

class JobClient(ABC):
    """Abstract job-execution interface."""

    @abstractmethod
    def submit(self, stage: Stage, payload: Dict[str, Any]) -> str:
        """Start a run for `stage` and return its external run id."""
        ...

    @abstractmethod
    def get_run(self, run_id: str) -> RunSnapshot:
        """Current status of a run."""
        ...

    @abstractmethod
    def get_items(self, result_ref: str, offset: int, limit: int) -> ItemPage:
        """One page of a finished run's results."""
        ...

    def close(self) -> None:
        pass

    def __enter__(self) -> JobClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ------------------------------------------------------------------
# Actor input builders
# ------------------------------------------------------------------

def build_directory_search_input(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map a directory-search payload to Google Maps crawler input."""
    queries = [q for q in payload.get("queries") or [] if isinstance(q, str) and q.strip()]
    if not queries:
        raise InvalidInputError("Directory search needs at least one query")
    if len(queries) > MAX_QUERIES:
        raise InvalidInputError(f"At most {MAX_QUERIES} queries per run, got {len(queries)}")
    for q in queries:
        if len(q) > MAX_QUERY_LENGTH:
            raise InvalidInputError(f"Query longer than {MAX_QUERY_LENGTH} characters")

    language = payload.get("language") or "en"
    if not _LANGUAGE_RE.match(language):
        raise InvalidInputError(f"Invalid language code: {language!r}")

    max_results = payload.get("maxResults") or 50
    if not isinstance(max_results, int) or max_results < 1:
        raise InvalidInputError(f"maxResults must be a positive integer, got {max_results!r}")

    location = payload.get("location") or {}
    if isinstance(location, str):
        location = {"query": location}

    actor_input: Dict[str, Any] = {
        "searchStringsArray": queries,
        "maxCrawledPlacesPerSearch": min(max_results, MAX_PLACES_PER_SEARCH),
        "language": language,
        "exportPlaceUrls": False,
        "scrapeReviewsCount": 0,
        "scrapeDirectories": False,
        "scrapeImages": False,
        "includePeopleAlsoSearch": False,
    }
    location_query = location.get("query") or location.get("city")
    if location_query:
        actor_input["locationQuery"] = location_query
    if location.get("country_code"):
        actor_input["countryCode"] = location["country_code"].lower()
    return actor_input


# Runs inside the web-scraper actor for every start URL.
CONTACT_PAGE_FUNCTION = """async function pageFunction(context) {
    const $ = context.jQuery;
    const url = context.request.url;
    try {
        const title = $('title').first().text().trim() || $('h1').first().text().trim();
        const pattern = /[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\\.[a-zA-Z]{2,}/g;
        const mailto = $('a[href^="mailto:"]').map(function () {
            const href = $(this).attr('href');
            return href ? href.replace('mailto:', '').split('?')[0] : null;
        }).get().filter(Boolean);
        const found = ($('body').text().match(pattern) || []).concat(mailto);
        const allEmails = [...new Set(found.map(e => e.trim().toLowerCase()))];
        const description = $('meta[name="description"]').attr('content')
            || $('meta[property="og:description"]').attr('content')
            || $('p').first().text().trim() || null;
        const country = $('meta[name="country"]').attr('content') || null;
        return {
            url: url,
            pageTitle: title || null,
            email: allEmails.length ? allEmails[0] : null,
            allEmails: allEmails,
            description: description ? description.substring(0, 500) : null,
            country: country,
            scrapedAt: new Date().toISOString()
        };
    } catch (error) {
        return {url: url, allEmails: [], scrapingError: error.message,
                scrapedAt: new Date().toISOString()};
    }
}"""


def build_contact_extraction_input(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map a contact-extraction payload to web-scraper input."""
    urls = [u for u in payload.get("urls") or [] if isinstance(u, str) and u.strip()]
    if not urls:
        raise InvalidInputError("Contact extraction needs at least one url")

    return {
        "runMode": "PRODUCTION",
        "startUrls": [{"url": u} for u in urls],
        "keepUrlFragments": False,
        "linkSelector": "",
        "maxCrawlingDepth": 0,
        "excludes": [{"glob": EXCLUDED_FILE_GLOB}],
        "pageFunction": CONTACT_PAGE_FUNCTION,
        "injectJQuery": True,
        "proxyConfiguration": {"useApifyProxy": True},
        "ignoreSslErrors": True,
        "downloadMedia": False,
        "downloadCss": False,
        "maxRequestRetries": 3,
        "maxPagesPerCrawl": len(urls),
        "maxResultsPerCrawl": len(urls),
        "pageLoadTimeoutSecs": 120,
        "pageFunctionTimeoutSecs": 60,
        "waitUntil": ["domcontentloaded"],
        "closeCookieModals": True,
    }


# ------------------------------------------------------------------
# Apify provider
# ------------------------------------------------------------------

APIFY_STATUS_MAP = {
    "READY": RunStatus.SUBMITTED,
    "RUNNING": RunStatus.RUNNING,
    "SUCCEEDED": RunStatus.SUCCEEDED,
    "FAILED": RunStatus.FAILED,
    "ABORTED": RunStatus.FAILED,
    "ABORTING": RunStatus.FAILED,
    "TIMED-OUT": RunStatus.FAILED,
    "TIMING-OUT": RunStatus.FAILED,
}


class ApifyJobClient(JobClient):
    """Job client for the Apify v2 REST API (https://docs.apify.com/api/v2)."""

    API_URL = "https://api.apify.com/v2"

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        actors: Optional[Dict[Stage, str]] = None,
        timeout: float = 30.0,
        gate: Optional[SubmissionGate] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not token:
            raise PreconditionError("APIFY_API_TOKEN not set. Set env var or pass token.")
        self._actors = actors or {
            Stage.DIRECTORY_SEARCH: "compass~crawler-google-places",
            Stage.CONTACT_EXTRACTION: "apify~web-scraper",
        }
        self._gate = gate or get_submission_gate()
        self._http = httpx.Client(
            base_url=(base_url or self.API_URL).rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ServiceUnavailableError(f"{method} {path}: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise ServiceUnavailableError(
                f"{method} {path}: HTTP {resp.status_code}", status_code=resp.status_code
            )
        if resp.status_code >= 400:
            raise SubmissionError(
                f"{method} {path}: {_error_message(resp)}", status_code=resp.status_code
            )
        return resp

    def submit(self, stage: Stage, payload: Dict[str, Any]) -> str:
        if stage == Stage.DIRECTORY_SEARCH:
            actor_input = build_directory_search_input(payload)
        else:
            actor_input = build_contact_extraction_input(payload)

        actor = self._actors[stage]
        with self._gate.slot():
            resp = self._request("POST", f"/acts/{actor}/runs", json=actor_input)

        run_id = _data(resp).get("id")
        if not run_id:
            raise ServiceUnavailableError(f"Run for {actor} started without an id")
        logger.info("Started %s run %s on %s", stage.value, run_id, actor)
        return run_id

    def get_run(self, run_id: str) -> RunSnapshot:
        data = _data(self._request("GET", f"/actor-runs/{run_id}"))
        raw_status = (data.get("status") or "").upper()
        status = APIFY_STATUS_MAP.get(raw_status)
        if status is None:
            logger.warning("Unknown run status %r for %s, treating as running", raw_status, run_id)
            status = RunStatus.RUNNING

        message = data.get("statusMessage")
        if status == RunStatus.FAILED and not message:
            message = raw_status.lower()
        return RunSnapshot(
            status=status,
            result_ref=data.get("defaultDatasetId") if status == RunStatus.SUCCEEDED else None,
            status_message=message,
        )

    def get_items(self, result_ref: str, offset: int, limit: int) -> ItemPage:
        resp = self._request(
            "GET",
            f"/datasets/{result_ref}/items",
            params={"offset": offset, "limit": limit, "clean": "true", "format": "json"},
        )
        items = _json(resp)
        if isinstance(items, dict):
            # Wrapped form: {"data": {"items": [...], "total": n}}
            data = items.get("data") or items
            if not isinstance(data, dict):
                raise ServiceUnavailableError(f"Dataset {result_ref} returned a malformed page")
            items, total = data.get("items", []), data.get("total")
        else:
            total = resp.headers.get("x-apify-pagination-total")
        if not isinstance(items, list):
            raise ServiceUnavailableError(f"Dataset {result_ref} returned a non-list page")
        try:
            total = int(total) if total is not None else offset + len(items)
        except ValueError:
            total = offset + len(items)
        return ItemPage(items=items, total=total)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise ServiceUnavailableError(f"Malformed response from {resp.request.url}") from e


def _data(resp: httpx.Response) -> Dict[str, Any]:
    """The `data` object of an Apify envelope."""
    body = _json(resp)
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise ServiceUnavailableError(f"Response from {resp.request.url} has no data object")
    return data


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return resp.reason_phrase or f"HTTP {resp.status_code}"


def get_job_client(config=None, provider: str = "apify", **kwargs) -> JobClient:
    """Factory: create a job client by provider name."""
    providers = {
        "apify": ApifyJobClient,
    }
    cls = providers.get(provider)
    if not cls:
        raise ValueError(
            f"Unknown provider '{provider}'. Choose from: {list(providers.keys())}"
        )
    if config is not None:
        kwargs.setdefault("token", config.apify_token)
        kwargs.setdefault("base_url", config.apify_base_url)
        kwargs.setdefault("timeout", config.request_timeout)
        kwargs.setdefault("actors", {
            Stage.DIRECTORY_SEARCH: config.directory_actor,
            Stage.CONTACT_EXTRACTION: config.contact_actor,
        })
        kwargs.setdefault("gate", get_submission_gate(
            per_minute=config.submissions_per_minute,
            max_concurrent=config.max_concurrent_submissions,
        ))
    return cls(**kwargs)
