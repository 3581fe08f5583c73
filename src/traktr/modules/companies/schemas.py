"""
Traktr Companies - Schemas.

Pydantic models for company creation, joining and employee profile setup.
"""

from pydantic import BaseModel, ConfigDict, Field


class Company(BaseModel):
    """Tenant boundary owning jobs and an employee roster."""

    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(..., alias="companyId")
    name: str
    join_code: str = Field(..., alias="joinCode")
    owner_uid: str = Field(..., alias="ownerUid")


class CompanyCreateRequest(BaseModel):
    name: str = Field(..., max_length=120)


class CompanyJoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    join_code: str = Field(..., alias="joinCode", max_length=64)


class CompanyJoinResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(..., alias="companyId")
    company_name: str = Field(..., alias="companyName")


class ProfileCompleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(..., alias="displayName", max_length=120)
    photo_url: str = Field(..., alias="photoURL", description="Uploaded photo locator")


class ProfileCompleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    company_id: str = Field(..., alias="companyId")
    display_name: str = Field(..., alias="displayName")
    photo_url: str = Field(..., alias="photoURL")
    profile_complete: bool = Field(default=True, alias="profileComplete")
