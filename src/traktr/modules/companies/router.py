"""
Traktr Companies - Router.

API endpoints for company create/join and employee profile setup.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from traktr.auth import AuthIdentity, get_current_identity
from traktr.deps import get_companies_service, require_session
from traktr.modules.companies.schemas import (
    Company,
    CompanyCreateRequest,
    CompanyJoinRequest,
    CompanyJoinResponse,
    ProfileCompleteRequest,
    ProfileCompleteResponse,
)
from traktr.modules.companies.service import CompaniesService
from traktr.modules.session.schemas import ResolvedSession

router = APIRouter(
    prefix="/companies",
    tags=["companies"],
)


@router.post("", response_model=Company, status_code=201)
async def create_company(
    request: CompanyCreateRequest,
    identity: Annotated[AuthIdentity, Depends(get_current_identity)],
    service: Annotated[CompaniesService, Depends(get_companies_service)],
):
    """Create a company owned by the caller and return its join code."""
    return await service.create_company(identity, request.name)


@router.post("/join", response_model=CompanyJoinResponse)
async def join_company(
    request: CompanyJoinRequest,
    identity: Annotated[AuthIdentity, Depends(get_current_identity)],
    service: Annotated[CompaniesService, Depends(get_companies_service)],
):
    """Attach the caller to the company matching a join code."""
    return await service.join_company(identity, request.join_code)


@router.post("/profile", response_model=ProfileCompleteResponse)
async def complete_profile(
    request: ProfileCompleteRequest,
    identity: Annotated[AuthIdentity, Depends(get_current_identity)],
    service: Annotated[CompaniesService, Depends(get_companies_service)],
):
    """Record the employee's display name and photo."""
    return await service.complete_employee_profile(identity, request.display_name, request.photo_url)


@router.get("/current", response_model=Company)
async def get_current_company(
    session: Annotated[ResolvedSession, Depends(require_session)],
    service: Annotated[CompaniesService, Depends(get_companies_service)],
):
    """The caller's company, including the join code to share with employees."""
    return await service.get_current_company(session)
