"""
Traktr Session - Schemas.

Pydantic models for resolved sessions and routing decisions.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["owner", "employee", "independent"]

ROLES: tuple[str, ...] = ("owner", "employee", "independent")
DEFAULT_ROLE: Role = "independent"

SessionSource = Literal["remote", "local", "synthesized", "none"]


class RoutingTarget(str, Enum):
    """Named destinations the screen layer navigates to."""

    LOGIN = "LOGIN"
    CREATE_COMPANY = "CREATE_COMPANY"
    JOIN_COMPANY = "JOIN_COMPANY"
    PROFILE_SETUP = "PROFILE_SETUP"
    HOME = "HOME"


def normalize_role(value: Any) -> Role:
    """Unknown or missing roles collapse to independent."""
    if isinstance(value, str) and value in ROLES:
        return value  # type: ignore[return-value]
    return DEFAULT_ROLE


def normalize_company_id(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class ResolvedSession(BaseModel):
    """Identity record as resolved for one device.

    Serialized with camelCase aliases, which is also the local cache blob
    format.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    email: str | None = None
    name: str = ""
    role: Role = DEFAULT_ROLE
    company_id: str | None = Field(default=None, alias="companyId")

    def to_cache(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_cache(cls, raw: dict[str, Any], uid: str | None = None) -> "ResolvedSession | None":
        """Decode a cached blob field by field; returns None without a uid."""
        cached_uid = raw.get("uid")
        resolved_uid = cached_uid if isinstance(cached_uid, str) and cached_uid else uid
        if not resolved_uid:
            return None

        name = raw.get("name")
        return cls(
            uid=resolved_uid,
            email=_optional_str(raw.get("email")),
            name=name if isinstance(name, str) else "",
            role=normalize_role(raw.get("role")),
            company_id=normalize_company_id(raw.get("companyId")),
        )


class SessionResolution(BaseModel):
    """Result of one resolution pass."""

    session: ResolvedSession | None = None
    routing_target: RoutingTarget
    source: SessionSource = "none"
    profile_ready: bool | None = Field(
        default=None,
        description="Employee profile completion gate result; None when not evaluated",
    )
    remote_available: bool = True
    stale: bool = Field(default=False, description="True when the pass was abandoned before completion")


class SessionResolveResponse(BaseModel):
    """API response for POST /session/resolve."""

    routing_target: RoutingTarget
    session: ResolvedSession | None = None
    source: SessionSource
    profile_ready: bool | None = None
    remote_available: bool = True
