"""
Traktr Tickets - Schemas.

A work ticket is an employee's end-of-day report on one company job. There
is at most one per employee, job and day: its id is `{dayKey}_{uid}`, and
once submitted only the owner's review flags ever change.
"""

from pydantic import BaseModel, ConfigDict, Field

DAY_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class WorkTicket(BaseModel):
    """A normalized work ticket."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="{dayKey}_{uid}")
    job_id: str = Field(..., alias="jobId")
    job_title: str = Field(default="", alias="jobTitle")
    job_address: str = Field(default="", alias="jobAddress")

    work_performed: str = Field(default="", alias="workPerformed")
    labor_hours: float = Field(default=0, alias="laborHours")
    materials_used: str = Field(default="", alias="materialsUsed")

    created_by_uid: str | None = Field(default=None, alias="createdByUid")
    created_by_name: str | None = Field(default=None, alias="createdByName")
    created_by_email: str | None = Field(default=None, alias="createdByEmail")
    created_by_role: str | None = Field(default=None, alias="createdByRole")
    created_at: str = Field(..., alias="createdAt", description="ISO-8601, UTC")
    day_key: str = Field(default="", alias="dayKey")

    is_final: bool = Field(default=True, alias="isFinal")
    is_reviewed: bool = Field(default=False, alias="isReviewed")
    reviewed_at: str | None = Field(default=None, alias="reviewedAt")
    reviewed_by_uid: str | None = Field(default=None, alias="reviewedByUid")


class WorkTicketCreate(BaseModel):
    """Body of a ticket submission."""

    model_config = ConfigDict(populate_by_name=True)

    work_performed: str = Field(..., alias="workPerformed", min_length=1, max_length=4000)
    labor_hours: float = Field(default=0, ge=0, allow_inf_nan=False, alias="laborHours")
    materials_used: str = Field(default="", alias="materialsUsed", max_length=4000)
    day_key: str | None = Field(
        default=None,
        alias="dayKey",
        pattern=DAY_KEY_PATTERN,
        description="The device's local calendar date; defaults to the UTC date",
    )


class WorkTicketList(BaseModel):
    """Tickets newest first, with the review backlog."""

    items: list[WorkTicket]
    total: int = 0
    unreviewed: int = 0
