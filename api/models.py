"""
Pydantic request/response models for the API.

Domain records (VoterRecord, AdminRecord) are defined in
``registration.models``; the models here wrap them for transport and carry
Field() descriptions and examples for the OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from registration.models import AdminRecord, VoterRecord


# ── Registration ──────────────────────────────────────────────────────────────

class SubmissionOut(BaseModel):
    """A registration confirmed by the remote store."""
    status: str = Field("registered", examples=["registered"])
    submission_id: str = Field(..., description="Submission identifier")
    attempts: int = Field(..., description="Insert attempts used", examples=[1])
    record: VoterRecord


class SavedLocallyOut(BaseModel):
    """Delivery failed; the registration is parked for automatic retry."""
    status: str = Field("saved_locally", examples=["saved_locally"])
    submission_id: str | None = None
    backup_key: str | None = Field(None, examples=["voter_submission_5f0c..."])
    message: str = Field(..., examples=["Saved locally, will retry automatically"])


class StepCheckOut(BaseModel):
    """Gate result for one form step."""
    step: str = Field(..., examples=["personal"])
    valid: bool
    errors: list[str] = Field(default_factory=list)
    next_step: str = Field(..., description="Step to show next if valid", examples=["region"])


# ── Voters table ──────────────────────────────────────────────────────────────

class VoterPage(BaseModel):
    """One page of the registration table, first come first served."""
    total: int = Field(..., description="Records matching the filters", examples=[1234])
    page: int = Field(..., examples=[1])
    page_size: int = Field(..., examples=[50])
    total_pages: int = Field(..., examples=[25])
    has_next: bool
    has_prev: bool
    page_numbers: list[int | None] = Field(
        ..., description="Pager window; null marks an ellipsis", examples=[[1, 2, 3, 4, None, 25]],
    )
    offset: int = Field(..., description="Row number of the first item minus one", examples=[0])
    items: list[VoterRecord]


class DeleteVotersIn(BaseModel):
    ids: list[str] = Field(..., min_length=1, description="Voter ids to delete")


class DeleteVotersOut(BaseModel):
    deleted: int


# ── Admin ─────────────────────────────────────────────────────────────────────

class LoginIn(BaseModel):
    email: str = Field(..., examples=["admin@example.com"])
    password: str


class SessionOut(BaseModel):
    token: str = Field(..., description="Bearer token for admin endpoints")
    email: str
    timestamp: str = Field(..., description="Login time (ISO 8601)")
    expires: str = Field(..., description="Expiry time (ISO 8601)")


class AdminCreateIn(BaseModel):
    id: str = Field(..., description="Admin-chosen unique identifier", examples=["ops-01"])
    email: str = Field(..., examples=["ops@example.com"])
    password: str


class AdminListOut(BaseModel):
    count: int
    items: list[AdminRecord]


class SetupStatusOut(BaseModel):
    initial_admins_present: bool
    admin_count: int


# ── Aggregations ──────────────────────────────────────────────────────────────

class SeriesPoint(BaseModel):
    name: str = Field(..., examples=["Banjul"])
    value: int = Field(..., examples=[42])


class AggregationOut(BaseModel):
    total: int
    gender: list[SeriesPoint]
    region: list[SeriesPoint]
    constituency: dict[str, dict[str, int]] = Field(
        ..., description="region -> constituency -> count",
    )


class RegionBreakdownOut(BaseModel):
    region: str
    total: int
    constituencies: list[SeriesPoint]


# ── Recovery ──────────────────────────────────────────────────────────────────

class RecoveryStatusOut(BaseModel):
    pending: int
    is_recovering: bool
    entries: list[dict[str, Any]] = Field(
        default_factory=list, description="Ledger entry metadata (no personal data)",
    )
    malformed: list[str] = Field(default_factory=list)
    notices: list[dict[str, Any]] = Field(default_factory=list)
    last_report: dict[str, Any] | None = None


# ── Reference ─────────────────────────────────────────────────────────────────

class RegionOut(BaseModel):
    name: str = Field(..., examples=["Banjul"])
    constituencies: list[str]


class IdTypeOut(BaseModel):
    value: str = Field(..., examples=["passport_number"])
    label: str = Field(..., examples=["Passport"])


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str
    detail: str | list[str] | None = None
    status_code: int
