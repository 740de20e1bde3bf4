"""
Pydantic data models for the harvesting pipeline.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from uuid import uuid4
from pydantic import BaseModel, Field, field_validator, model_validator

from errors import PreconditionError
from normalizer.engine import EmailNormalizer, NameNormalizer
from .enums import TaskStatus, Stage, RunStatus, DataSource


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _reconcile_emails(data: Any) -> Any:
    """Dedupe `emails` and keep `primary_email` a member of them."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    emails = EmailNormalizer.dedupe(data.get("emails") or [])
    primary = EmailNormalizer.normalize(data.get("primary_email"))
    if primary and primary not in emails:
        emails.insert(0, primary)
    if not primary and emails:
        primary = emails[0]
    data["emails"] = emails
    data["primary_email"] = primary
    return data


class Location(BaseModel):
    """Location constraint of a search."""
    country_code: Optional[str] = Field(None, description="ISO-3166 alpha-2 code")
    city: Optional[str] = Field(None, description="City name")
    query: Optional[str] = Field(None, description="Free-text location")

    @field_validator("country_code")
    @classmethod
    def validate_country_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().upper()
        if len(v) != 2 or not v.isalpha():
            raise ValueError(f"Invalid country code: {v}")
        return v

    @field_validator("city", "query")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        v = NameNormalizer.normalize_name(v)
        return v or None

    @property
    def is_empty(self) -> bool:
        return not (self.country_code or self.city or self.query)

    def describe(self) -> str:
        """Free-text form passed to the directory search."""
        if self.query:
            return self.query
        return ", ".join(p for p in (self.city, self.country_code) if p)


class SearchTask(BaseModel):
    """A normalized search intent plus its lifecycle state."""
    id: str = Field(default_factory=lambda: str(uuid4()), description="Task ID")
    name: Optional[str] = Field(None, description="Human-readable task name")
    queries: List[str] = Field(..., min_length=1, description="Ordered query strings")
    location: Location = Field(default_factory=Location)
    max_results: int = Field(50, ge=1, le=300, description="Result cap")
    language: str = Field("en", pattern=r"^[a-z]{2}$")
    status: TaskStatus = Field(TaskStatus.PENDING)
    include_contactless: bool = Field(
        False, description="Keep contacts without email (manual follow-up lists)"
    )
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Dubai gyms",
                "queries": ["gym", "fitness club"],
                "location": {"country_code": "AE", "city": "Dubai"},
                "max_results": 50,
                "language": "en",
            }
        }


class JobRun(BaseModel):
    """
    One execution of a stage on the job-execution service.

    Only the poller mutates a run, through `advance()`. Terminal states
    are final.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    stage: Stage
    external_run_id: str
    status: RunStatus = RunStatus.SUBMITTED
    result_ref: Optional[str] = None
    status_message: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    polls: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def advance(
        self,
        status: RunStatus,
        result_ref: Optional[str] = None,
        message: Optional[str] = None,
    ) -> "JobRun":
        """Apply the next observed status."""
        if self.is_terminal:
            raise PreconditionError(
                f"Run {self.external_run_id} is already {self.status.value}; "
                f"cannot move to {status.value}"
            )
        self.status = status
        if result_ref:
            self.result_ref = result_ref
        if message:
            self.status_message = message
        if status.is_terminal:
            self.finished_at = utcnow()
        return self


class BaseRecord(BaseModel):
    """Organization found by the directory search (stage 1)."""
    organization_name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    place_id: Optional[str] = Field(None, description="Stable directory identifier")
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews_count: Optional[int] = Field(None, ge=0)
    google_maps_url: Optional[str] = None
    retrieval_index: int = Field(0, ge=0, description="Position in retrieval order")
    fetched_at: datetime = Field(default_factory=utcnow)

    class Config:
        frozen = True


class EnrichmentRecord(BaseModel):
    """Contact data extracted from one website (stage 2)."""
    source_url: str
    emails: List[str] = Field(default_factory=list)
    primary_email: Optional[str] = None
    description: Optional[str] = None
    country: Optional[str] = None
    page_title: Optional[str] = None
    extraction_error: Optional[str] = None
    scraped_at: datetime = Field(default_factory=utcnow)
    retrieval_index: int = Field(0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def reconcile_emails(cls, data: Any) -> Any:
        return _reconcile_emails(data)

    @property
    def failed(self) -> bool:
        return bool(self.extraction_error)

    class Config:
        frozen = True


class MergedContact(BaseModel):
    """One organization with its aggregated contact channels."""
    identity_key: str
    organization_name: str
    emails: List[str] = Field(default_factory=list)
    primary_email: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    place_id: Optional[str] = None
    has_contact_info: bool = False
    data_source: DataSource = DataSource.DIRECTORY_ONLY
    extraction_error: Optional[str] = None
    relevance_score: Optional[int] = None
    fetched_at: Optional[datetime] = None
    enriched_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def reconcile_emails(cls, data: Any) -> Any:
        data = _reconcile_emails(data)
        if isinstance(data, dict) and data["emails"]:
            data["has_contact_info"] = True
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return self.model_dump(mode="json")

    class Config:
        frozen = True


class TaskResult(BaseModel):
    """Outcome of one orchestrated task."""
    task_id: str
    status: TaskStatus
    contacts: List[MergedContact] = Field(default_factory=list)
    runs: List[JobRun] = Field(default_factory=list)
    base_count: int = 0
    merged_count: int = 0
    dropped_duplicates: int = 0
    dropped_contactless: int = 0
    dropped_irrelevant: int = 0
    needs_review: bool = False
    warnings: List[str] = Field(default_factory=list)
    saved_count: Optional[int] = None
    persistence_error: Optional[str] = None
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=utcnow)

    @property
    def final_count(self) -> int:
        return len(self.contacts)

    def summary(self) -> Dict[str, Any]:
        """Counters stored alongside the task row."""
        return {
            "status": self.status.value,
            "base_count": self.base_count,
            "merged_count": self.merged_count,
            "dropped_duplicates": self.dropped_duplicates,
            "dropped_contactless": self.dropped_contactless,
            "dropped_irrelevant": self.dropped_irrelevant,
            "final_count": self.final_count,
            "needs_review": self.needs_review,
            "warnings": list(self.warnings),
        }
