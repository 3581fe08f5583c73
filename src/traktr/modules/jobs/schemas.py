"""
Traktr Jobs - Schemas.

Pydantic models for normalized job records and fetch results. Field aliases
are the document field names used both in the remote store and in the local
job list blob.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

SortOption = Literal["Newest", "Oldest", "A-Z", "Z-A"]
SORT_OPTIONS: tuple[str, ...] = ("Newest", "Oldest", "A-Z", "Z-A")
DEFAULT_SORT: SortOption = "Newest"

StatusFilter = Literal["all", "open", "done"]

FetchStrategy = Literal["independent", "owner", "employee", "none"]
FetchStatus = Literal["ok", "partial", "error", "skipped"]


class JobRecord(BaseModel):
    """A normalized job. Every field has a safe default."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    address: str = ""
    description: str = ""
    created_at: str = Field(..., alias="createdAt", description="ISO-8601, UTC")
    is_done: bool = Field(default=False, alias="isDone")

    client_name: str = Field(default="", alias="clientName")
    client_phone: str = Field(default="", alias="clientPhone")
    client_notes: str = Field(default="", alias="clientNotes")

    photo_uris: list[str] = Field(default_factory=list, alias="photoUris")
    # Inline image data; only ever populated in local mode.
    photo_base64s: list[str] = Field(default_factory=list, alias="photoBase64s")

    labor_hours: float = Field(default=0, alias="laborHours")
    hourly_rate: float = Field(default=0, alias="hourlyRate")
    material_cost: float = Field(default=0, alias="materialCost")

    assigned_to_uid: str | None = Field(default=None, alias="assignedToUid")
    assigned_to_uids: list[str] = Field(default_factory=list, alias="assignedToUids")

    owner_uid: str | None = Field(default=None, alias="ownerUid")
    created_by_uid: str | None = Field(default=None, alias="createdByUid")

    @computed_field
    @property
    def total(self) -> float:
        """laborHours * hourlyRate + materialCost."""
        return self.labor_hours * self.hourly_rate + self.material_cost

    def is_assigned_to(self, uid: str) -> bool:
        return uid == self.assigned_to_uid or uid in self.assigned_to_uids

    def to_blob(self) -> dict:
        return self.model_dump(by_alias=True)


class JobFetchResult(BaseModel):
    """Output of one Job Repository fetch. Never raised, always returned."""

    jobs: list[JobRecord] = Field(default_factory=list)
    trash: list[JobRecord] = Field(default_factory=list)
    strategy: FetchStrategy = "none"
    status: FetchStatus = "ok"
    warnings: list[str] = Field(default_factory=list)
    sort_option: SortOption | None = None


class JobCounts(BaseModel):
    """Open/done counters over a job list."""

    total: int = 0
    open: int = 0
    done: int = 0


class JobDraft(BaseModel):
    """Fields for a new job (local create or cloud submit)."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    address: str = ""
    description: str = ""
    client_name: str = Field(default="", alias="clientName")
    client_phone: str = Field(default="", alias="clientPhone")
    client_notes: str = Field(default="", alias="clientNotes")
    photo_uris: list[str] = Field(default_factory=list, alias="photoUris")
    photo_base64s: list[str] = Field(default_factory=list, alias="photoBase64s")
    labor_hours: float = Field(default=0, ge=0, allow_inf_nan=False, alias="laborHours")
    hourly_rate: float = Field(default=0, ge=0, allow_inf_nan=False, alias="hourlyRate")
    material_cost: float = Field(default=0, ge=0, allow_inf_nan=False, alias="materialCost")
    assigned_to_uids: list[str] = Field(default_factory=list, alias="assignedToUids")


class JobUpdate(BaseModel):
    """Partial edit of a local job."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    address: str | None = None
    description: str | None = None
    client_name: str | None = Field(default=None, alias="clientName")
    client_phone: str | None = Field(default=None, alias="clientPhone")
    client_notes: str | None = Field(default=None, alias="clientNotes")
    photo_uris: list[str] | None = Field(default=None, alias="photoUris")
    photo_base64s: list[str] | None = Field(default=None, alias="photoBase64s")
    labor_hours: float | None = Field(default=None, ge=0, allow_inf_nan=False, alias="laborHours")
    hourly_rate: float | None = Field(default=None, ge=0, allow_inf_nan=False, alias="hourlyRate")
    material_cost: float | None = Field(default=None, ge=0, allow_inf_nan=False, alias="materialCost")
    is_done: bool | None = Field(default=None, alias="isDone")


class JobListResponse(BaseModel):
    """API response for GET /jobs."""

    items: list[JobRecord]
    counts: JobCounts
    strategy: FetchStrategy
    status: FetchStatus
    warnings: list[str] = Field(default_factory=list)
    sort_option: SortOption | None = None
