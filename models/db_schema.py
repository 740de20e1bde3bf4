"""
Pydantic models matching the Supabase database schema exactly.
Used by the repository for inserts and reads.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field

from .enums import TaskStatus
from .schema import MergedContact, SearchTask


class ParsingTaskRow(BaseModel):
    """Row of `parsing_tasks`."""
    id: Optional[str] = None
    task_name: Optional[str] = None
    search_queries: List[str] = Field(default_factory=list)
    location: Optional[Dict[str, Any]] = None  # JSONB
    max_results: int = 50
    language: str = "en"
    include_contactless: bool = False
    status: TaskStatus = TaskStatus.PENDING
    current_stage: Optional[str] = None
    progress: Optional[Dict[str, Any]] = None  # JSONB
    summary: Optional[Dict[str, Any]] = None  # JSONB
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_task(cls, task: SearchTask) -> "ParsingTaskRow":
        return cls(
            id=task.id,
            task_name=task.name,
            search_queries=list(task.queries),
            location=task.location.model_dump(),
            max_results=task.max_results,
            language=task.language,
            include_contactless=task.include_contactless,
            status=task.status,
            created_at=task.created_at,
        )

    def to_task(self) -> SearchTask:
        fields: Dict[str, Any] = {
            "name": self.task_name,
            "queries": self.search_queries,
            "location": self.location or {},
            "max_results": self.max_results,
            "language": self.language,
            "include_contactless": self.include_contactless,
            "status": self.status,
        }
        if self.id:
            fields["id"] = self.id
        if self.created_at:
            fields["created_at"] = self.created_at
        return SearchTask(**fields)


class ParsingResultRow(BaseModel):
    """Row of `parsing_results`, unique on (task_id, identity_key)."""
    task_id: str
    identity_key: str
    organization_name: str
    email: Optional[str] = None
    all_emails: List[str] = Field(default_factory=list)  # JSONB
    description: Optional[str] = None
    website: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    place_id: Optional[str] = None
    has_contact_info: bool = False
    data_source: Optional[str] = None
    scraping_error: Optional[str] = None
    relevance_score: Optional[int] = None
    scraped_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_contact(cls, task_id: str, contact: MergedContact) -> "ParsingResultRow":
        return cls(
            task_id=task_id,
            identity_key=contact.identity_key,
            organization_name=contact.organization_name,
            email=contact.primary_email,
            all_emails=list(contact.emails),
            description=contact.description,
            website=contact.website,
            country=contact.country,
            address=contact.address,
            phone=contact.phone,
            category=contact.category,
            place_id=contact.place_id,
            has_contact_info=contact.has_contact_info,
            data_source=contact.data_source.value,
            scraping_error=contact.extraction_error,
            relevance_score=contact.relevance_score,
            scraped_at=contact.enriched_at or contact.fetched_at,
        )
