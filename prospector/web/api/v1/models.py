"""Pydantic models for API v1."""

from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from prospector.models import Criterion, EnrichmentField, SearchRequest


class CriterionIn(BaseModel):
    """A typed search filter."""
    label: str = ""
    value: str = ""
    type: str = "other"


class EnrichmentIn(BaseModel):
    """A requested contact field."""
    label: str = ""
    value: str = ""


class ExecuteRequest(BaseModel):
    """Search execution payload."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "originalQuery": "Marketing directors at fintech startups in Berlin",
                "criteria": [
                    {"label": "Marketing director", "value": "marketing director", "type": "job_title"},
                    {"label": "Berlin", "value": "berlin", "type": "location"},
                ],
                "enrichments": [{"label": "Email", "value": "email"}, "linkedin"],
                "entityType": "person",
                "targetCount": 25,
            }
        },
    )

    query: str = Field(validation_alias=AliasChoices("query", "originalQuery"))
    criteria: List[Union[CriterionIn, str]] = Field(default_factory=list)
    enrichments: List[Union[EnrichmentIn, str]] = Field(default_factory=list)
    entity_type: str = Field(default="person", validation_alias=AliasChoices("entity_type", "entityType"))
    target_count: int = Field(default=25, validation_alias=AliasChoices("target_count", "targetCount"))
    preview: bool = False

    def to_search_request(self) -> SearchRequest:
        criteria = []
        for c in self.criteria:
            if isinstance(c, str):
                criteria.append(Criterion(label=c, value=c))
            else:
                criteria.append(Criterion(
                    label=c.label or c.value,
                    value=c.value or c.label,
                    type=c.type or "other",
                ))

        enrichments = []
        for e in self.enrichments:
            if isinstance(e, str):
                enrichments.append(EnrichmentField(label=e, value=e))
            else:
                enrichments.append(EnrichmentField(label=e.label or e.value, value=e.value or e.label.lower()))

        return SearchRequest(
            query=self.query,
            criteria=tuple(criteria),
            entity_type=self.entity_type or "person",
            enrichments=tuple(enrichments),
            target_count=self.target_count,
        )


class PlanRequest(BaseModel):
    """Natural-language query to plan."""
    query: str = Field(validation_alias=AliasChoices("query", "originalQuery"))
    entity_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("entity_type", "entityType"))


class SearchCriteriaSummary(BaseModel):
    query: str
    targetCount: int
    entityType: str
    criteriaCount: int
    enrichmentsCount: int


class ProgressSummary(BaseModel):
    found: int = 0
    analyzed: int = 0
    completion: int = 0


class StreamingSearchResponse(BaseModel):
    """Returned by a full search: the caller continues on the status or stream endpoint."""
    type: str = "streaming_search"
    websetId: str
    reused: bool
    searchCriteria: SearchCriteriaSummary
    status: str
    message: str
    progress: ProgressSummary = Field(default_factory=ProgressSummary)


class PreviewResponse(BaseModel):
    """Returned by a preview search (target of one)."""
    type: str  # preview_result, preview_timeout
    websetId: str
    prospects: List[dict] = Field(default_factory=list)
    message: str
    summary: Optional[dict] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    """One merge step of a webset."""
    prospects: List[dict]
    analyzed: int
    found: int
    status: str
    completion: int
    totalProspects: int


class CancelResponse(BaseModel):
    websetId: str
    streamsStopped: int
    remoteCanceled: bool
    message: str
