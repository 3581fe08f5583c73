"""
Traktr Companies - Service.

Company create/join and employee profile completion. Each operation records
its change durably in the remote store first and only then writes the new
company binding through to the local session cache, so the next resolution
pass sees the new value.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Any

from traktr.auth.schemas import AuthIdentity
from traktr.exceptions import (
    ExternalServiceException,
    JoinCodeNotFoundException,
    NotFoundException,
    TraktrException,
    ValidationException,
)
from traktr.modules.companies.schemas import (
    Company,
    CompanyJoinResponse,
    ProfileCompleteResponse,
)
from traktr.modules.session.schemas import ResolvedSession, normalize_company_id, normalize_role
from traktr.modules.session.service import write_through_session
from traktr.stores.local_cache import LocalSessionCache
from traktr.stores.remote_store import RemoteProfileStore

logger = logging.getLogger(__name__)

JOIN_CODE_PREFIX = "TRAKTR-"
JOIN_CODE_MIN_LENGTH = 6
JOIN_CODE_ATTEMPTS = 10
COMPANY_NAME_MIN_LENGTH = 2


def normalize_join_code(raw: str) -> str:
    return (raw or "").strip().upper()


def make_join_code(rng: random.Random | None = None) -> str:
    rng = rng or random
    return f"{JOIN_CODE_PREFIX}{rng.randint(1000, 9999)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CompaniesService:
    """createCompany / joinCompany collaborators."""

    def __init__(
        self,
        cache: LocalSessionCache,
        remote: RemoteProfileStore,
        rng: random.Random | None = None,
    ):
        self.cache = cache
        self.remote = remote
        self.rng = rng or random.Random()

    async def _remote(self, operation: str, call):
        try:
            return await call
        except TraktrException:
            raise
        except Exception as e:
            logger.warning(f"{operation} failed: {e}")
            raise ExternalServiceException("remote store", f"{operation} failed: {e}") from e

    async def _cached_session(self, uid: str) -> dict[str, Any]:
        cached = await self.cache.read_session() or {}
        return cached if cached.get("uid") in (None, uid) else {}

    async def generate_unique_join_code(self) -> str:
        for _ in range(JOIN_CODE_ATTEMPTS):
            code = make_join_code(self.rng)
            matches = await self._remote("join code lookup", self.remote.find_companies_by_join_code(code))
            if not matches:
                return code
        return f"{JOIN_CODE_PREFIX}{self.rng.randint(100000, 999999)}"

    async def create_company(self, identity: AuthIdentity, name: str) -> Company:
        """Create a company owned by identity and bind the owner to it.

        Raises:
            ValidationException: If the name is too short
            ExternalServiceException: If any remote write fails
        """
        company_name = (name or "").strip()
        if len(company_name) < COMPANY_NAME_MIN_LENGTH:
            raise ValidationException("Please enter a company name.")

        uid = identity.uid
        cached = await self._cached_session(uid)
        email = cached.get("email") or identity.email
        display_name = cached.get("name") if isinstance(cached.get("name"), str) else ""

        # Role first: company creation is only allowed for owners.
        await self._remote(
            "owner role update",
            self.remote.update_user(
                uid,
                {"role": "owner", "companyId": None, "name": display_name, "email": email, "updatedAt": _now_iso()},
            ),
        )

        join_code = await self.generate_unique_join_code()
        company_id = await self._remote(
            "company create",
            self.remote.create_company(
                {
                    "name": company_name,
                    "joinCode": join_code,
                    "ownerUid": uid,
                    "createdByUid": uid,
                    "createdAt": _now_iso(),
                }
            ),
        )

        await self._remote(
            "owner company binding",
            self.remote.update_user(uid, {"companyId": company_id, "role": "owner", "updatedAt": _now_iso()}),
        )
        await self._remote(
            "owner roster entry",
            self.remote.set_company_member(
                company_id,
                uid,
                {"uid": uid, "role": "owner", "email": email, "name": display_name, "createdAt": _now_iso()},
            ),
        )

        await write_through_session(
            self.cache,
            uid,
            email=email,
            name=display_name,
            role="owner",
            companyId=company_id,
            joinCode=join_code,
        )
        logger.info(f"Company created: companyId={company_id} ownerUid={uid}")
        return Company(company_id=company_id, name=company_name, join_code=join_code, owner_uid=uid)

    async def join_company(self, identity: AuthIdentity, join_code: str) -> CompanyJoinResponse:
        """Attach identity to the company matching join_code.

        Raises:
            ValidationException: If the code is too short
            JoinCodeNotFoundException: If no company matches
            ExternalServiceException: If the lookup or profile update fails
        """
        code = normalize_join_code(join_code)
        if len(code) < JOIN_CODE_MIN_LENGTH:
            raise ValidationException("Enter your company join code.")

        matches = await self._remote("join code lookup", self.remote.find_companies_by_join_code(code))
        if not matches:
            raise JoinCodeNotFoundException(code)

        # Codes are unique by construction; take the first on a collision.
        company = matches[0]
        company_name = company.data.get("name")
        company_name = company_name if isinstance(company_name, str) and company_name else "Company"

        await self._remote(
            "profile company binding",
            self.remote.update_user(identity.uid, {"companyId": company.id, "updatedAt": _now_iso()}),
        )

        cached = await self._cached_session(identity.uid)
        role = normalize_role(cached["role"]) if cached.get("role") else "employee"
        await write_through_session(self.cache, identity.uid, companyId=company.id, role=role)

        logger.info(f"uid={identity.uid} joined companyId={company.id}")
        return CompanyJoinResponse(company_id=company.id, company_name=company_name)

    async def complete_employee_profile(
        self,
        identity: AuthIdentity,
        display_name: str,
        photo_url: str,
    ) -> ProfileCompleteResponse:
        """Record the employee's display name and photo under their company."""
        name = (display_name or "").strip()
        if not name:
            raise ValidationException("Enter your real name.")
        photo = (photo_url or "").strip()
        if not photo or photo.startswith("data:"):
            raise ValidationException("A profile photo locator is required.")

        uid = identity.uid
        cached = await self._cached_session(uid)
        company_id = normalize_company_id(cached.get("companyId"))
        if company_id is None:
            profile = await self._remote("profile read", self.remote.get_user(uid)) or {}
            company_id = normalize_company_id(profile.get("companyId"))
        if company_id is None:
            raise ValidationException("Join a company before completing your profile.")

        email = identity.email or cached.get("email") or ""
        await self._remote(
            "employee profile write",
            self.remote.set_company_user_profile(
                company_id,
                uid,
                {
                    "uid": uid,
                    "email": email,
                    "role": "employee",
                    "displayName": name,
                    "photoURL": photo,
                    "updatedAt": _now_iso(),
                },
            ),
        )

        await write_through_session(
            self.cache,
            uid,
            email=email,
            role="employee",
            companyId=company_id,
            displayName=name,
            photoURL=photo,
            profileComplete=True,
        )
        return ProfileCompleteResponse(uid=uid, company_id=company_id, display_name=name, photo_url=photo)

    async def get_current_company(self, session: ResolvedSession) -> Company:
        if not session.company_id:
            raise NotFoundException("company", "none")

        data = await self._remote("company read", self.remote.get_company(session.company_id))
        if data is None:
            raise NotFoundException("company", session.company_id)

        return Company(
            company_id=session.company_id,
            name=data.get("name") if isinstance(data.get("name"), str) else "",
            join_code=data.get("joinCode") if isinstance(data.get("joinCode"), str) else "",
            owner_uid=data.get("ownerUid") if isinstance(data.get("ownerUid"), str) else "",
        )
