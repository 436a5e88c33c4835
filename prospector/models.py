"""Data models for prospect discovery."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class Criterion:
    """A typed search filter extracted from the user's description."""

    label: str
    value: str
    type: str = "other"


@dataclass(frozen=True)
class EnrichmentField:
    """A contact field the user wants extracted for every match."""

    label: str
    value: str


@dataclass(frozen=True)
class SearchRequest:
    """An immutable description of a prospect population to find."""

    query: str
    criteria: tuple[Criterion, ...] = ()
    entity_type: str = "person"
    enrichments: tuple[EnrichmentField, ...] = ()
    target_count: int = 25

    @classmethod
    def from_dict(cls, data: dict) -> "SearchRequest":
        """Build a request from loosely-typed JSON (criteria/enrichments as dicts or strings)."""
        criteria = []
        for c in data.get("criteria") or []:
            if isinstance(c, str):
                criteria.append(Criterion(label=c, value=c))
            else:
                criteria.append(Criterion(
                    label=c.get("label") or c.get("value", ""),
                    value=c.get("value") or c.get("label", ""),
                    type=c.get("type") or "other",
                ))

        enrichments = []
        for e in data.get("enrichments") or []:
            if isinstance(e, str):
                enrichments.append(EnrichmentField(label=e, value=e))
            else:
                enrichments.append(EnrichmentField(
                    label=e.get("label") or e.get("value", ""),
                    value=e.get("value") or (e.get("label") or "").lower(),
                ))

        return cls(
            query=data.get("query", ""),
            criteria=tuple(criteria),
            entity_type=data.get("entity_type") or data.get("entityType") or "person",
            enrichments=tuple(enrichments),
            target_count=data.get("target_count", data.get("targetCount", 25)),
        )


class CacheStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """A reference to a previously created webset."""

    webset_id: str
    criteria: list[str]
    entity_type: str
    enrichments: list[str]
    created_at: float
    last_used_at: float
    status: CacheStatus = CacheStatus.ACTIVE


@dataclass
class EnrichmentEntry:
    """One enrichment result, normalized from either raw payload shape."""

    identifier: Optional[str]
    label: Optional[str]
    status: str
    result: Any = None


# Confidence of the rule that assigned a field.
# Placeholders ("Profile Found", "Unknown") rank below every real value.
CONFIDENCE_PLACEHOLDER = -1
CONFIDENCE_FALLBACK = 0
CONFIDENCE_SHAPE = 1
CONFIDENCE_LABEL = 2
CONFIDENCE_IDENTIFIER = 3

PROSPECT_FIELDS = (
    "full_name",
    "job_title",
    "company",
    "email",
    "linkedin_url",
    "phone",
    "location",
    "industry",
    "company_size",
    "website",
)


@dataclass
class Prospect:
    """A discovered person or company, normalized for display."""

    id: str
    full_name: str = ""
    job_title: str = ""
    company: str = ""
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    website: Optional[str] = None

    # Raw provider payload, kept for audit/display
    enrichments: Any = field(default_factory=list)

    fit_score: int = 0
    summary: str = ""

    # field name -> confidence of the rule that set it
    confidence: dict[str, int] = field(default_factory=dict, repr=False)

    def assign(self, name: str, value: Optional[str], confidence: int) -> bool:
        """Set a field unless it already holds a value of equal or higher confidence."""
        if not value:
            return False
        if getattr(self, name) and self.confidence.get(name, CONFIDENCE_FALLBACK) >= confidence:
            return False
        setattr(self, name, value)
        self.confidence[name] = confidence
        return True

    def merge_from(self, other: "Prospect") -> None:
        """Refine this prospect with a later snapshot of the same item."""
        for name in PROSPECT_FIELDS:
            value = getattr(other, name)
            if not value:
                continue
            theirs = other.confidence.get(name, CONFIDENCE_FALLBACK)
            mine = self.confidence.get(name, CONFIDENCE_FALLBACK)
            if not getattr(self, name) or theirs >= mine:
                setattr(self, name, value)
                self.confidence[name] = theirs

        if other.enrichments:
            self.enrichments = other.enrichments
        if other.fit_score >= self.fit_score:
            self.fit_score = other.fit_score
            self.summary = other.summary or self.summary

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "exaItemId": self.id,
            "fullName": self.full_name,
            "jobTitle": self.job_title,
            "company": self.company,
            "email": self.email,
            "linkedinUrl": self.linkedin_url,
            "phone": self.phone,
            "location": self.location,
            "industry": self.industry,
            "companySize": self.company_size,
            "website": self.website,
            "enrichments": self.enrichments,
            "fitScore": self.fit_score,
            "summary": self.summary,
        }


class PollStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self not in (PollStatus.IDLE, PollStatus.RUNNING)


@dataclass
class ProgressState:
    """Progress of a webset as seen on one poll tick."""

    found: int = 0
    analyzed: int = 0
    completion_percent: int = 0
    status: PollStatus = PollStatus.IDLE
    remote_status: str = ""


@dataclass
class PollEvent:
    """A frame emitted by the poll loop."""

    type: str  # progress, complete, timeout, error, canceled
    status: str
    prospects: list[Prospect] = field(default_factory=list)
    analyzed: int = 0
    found: int = 0
    total_prospects: int = 0
    completion: int = 0
    reason: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.type != "progress"

    def to_dict(self) -> dict:
        """Convert to the wire frame."""
        if not self.is_terminal:
            return {
                "prospects": [p.to_dict() for p in self.prospects],
                "analyzed": self.analyzed,
                "found": self.found,
                "status": self.status,
                "totalProspects": self.total_prospects,
                "completion": self.completion,
            }

        data = {
            "type": self.type,
            "status": self.status,
            "totalProspects": self.total_prospects,
            "message": self.message,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SubmissionResult:
    """Outcome of create-or-reuse."""

    webset_id: str
    reused: bool = False
    external_id: Optional[str] = None
