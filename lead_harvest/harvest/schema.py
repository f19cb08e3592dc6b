from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from lead_harvest.infra.llm import GroundingSource

UNKNOWN = "N/A"

# Spellings the service uses for "no value" besides the sentinel itself
_UNKNOWN_VALUES = {"", "n/a", "na", "none", "null", "unknown", "not found", "-"}


def is_unknown(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in _UNKNOWN_VALUES


class LeadRecord(BaseModel):
    """One extracted business contact."""

    name: str = Field(..., description="Business name as listed")
    phone: str = Field(UNKNOWN, description="Primary phone / mobile / WhatsApp")
    email: str = Field(UNKNOWN, description="Email address")
    website: str = Field(UNKNOWN, description="Business website URL")
    address: str = Field(UNKNOWN, description="Full postal address")
    sourceUrl: str = Field(UNKNOWN, description="Page the record was found on")

    @field_validator("name", mode="before")
    @classmethod
    def _require_name(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if is_unknown(text):
            raise ValueError("lead name is empty")
        return text

    @field_validator(
        "phone", "email", "website", "address", "sourceUrl", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return UNKNOWN
        text = str(value).strip()
        return text if text else UNKNOWN

    @property
    def has_phone(self) -> bool:
        return not is_unknown(self.phone)


class SearchRequest(BaseModel):
    query: str
    modifiers: List[str] = []

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value


class SegmentFailure(BaseModel):
    label: str
    kind: Literal["rate_limited", "timeout", "service_error"]
    message: str


class ProgressEvent(BaseModel):
    kind: Literal["phase_started", "phase_completed"]
    phase_index: int
    phase_count: int
    label: str
    running_total: int = 0


class AggregationResult(BaseModel):
    """Final output of one harvest run"""

    query: str
    leads: List[LeadRecord]
    summary: Optional[str] = None
    sources: List[GroundingSource] = []
    failures: List[SegmentFailure] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.leads)
