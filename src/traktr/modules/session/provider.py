"""
Traktr Session - Provider.

Explicit owner of the current session state for one device, passed to the
components that need it instead of a process-wide session global.

A screen gaining focus calls `focus()`. Each new focus supersedes the
previous one, and a scope can also be released when its screen loses focus.
`refresh()` runs one resolution pass and then one job fetch. Results from a
scope that is no longer active are returned flagged stale and never applied.
"""

import logging

from pydantic import BaseModel, Field

from traktr.auth.schemas import AuthIdentity
from traktr.modules.jobs.repository import JobRepository
from traktr.modules.jobs.schemas import JobFetchResult
from traktr.modules.session.schemas import RoutingTarget, SessionResolution
from traktr.modules.session.service import SessionResolver

logger = logging.getLogger(__name__)


class FocusScope:
    """Handle for one screen focus; inactive once superseded or released."""

    def __init__(self, provider: "SessionProvider", generation: int):
        self._provider = provider
        self.generation = generation
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released and self._provider.generation == self.generation

    def release(self) -> None:
        self._released = True


class SessionState(BaseModel):
    """Last applied resolution and job fetch."""

    resolution: SessionResolution | None = None
    jobs: JobFetchResult | None = None
    generation: int = 0


class SessionRefresh(BaseModel):
    """Outcome of one refresh call."""

    resolution: SessionResolution
    jobs: JobFetchResult = Field(default_factory=lambda: JobFetchResult(status="skipped"))
    applied: bool = True


class SessionProvider:
    """Single owner responsible for refreshing session and job state."""

    def __init__(self, resolver: SessionResolver, jobs: JobRepository):
        self.resolver = resolver
        self.jobs = jobs
        self.generation = 0
        self.state = SessionState()

    def focus(self) -> FocusScope:
        self.generation += 1
        return FocusScope(self, self.generation)

    async def refresh(self, scope: FocusScope, identity: AuthIdentity | None) -> SessionRefresh:
        resolution = await self.resolver.resolve(identity, scope=scope)
        if not scope.active:
            return self._discard(scope, resolution)

        jobs = JobFetchResult(status="skipped")
        if resolution.routing_target == RoutingTarget.HOME:
            jobs = await self.jobs.fetch_jobs(resolution.session)
            if not scope.active:
                return self._discard(scope, resolution, jobs)

        self.state = SessionState(resolution=resolution, jobs=jobs, generation=scope.generation)
        return SessionRefresh(resolution=resolution, jobs=jobs)

    def _discard(
        self,
        scope: FocusScope,
        resolution: SessionResolution,
        jobs: JobFetchResult | None = None,
    ) -> SessionRefresh:
        logger.info(f"Discarding refresh for abandoned focus generation={scope.generation}")
        return SessionRefresh(
            resolution=resolution.model_copy(update={"stale": True}),
            jobs=jobs or JobFetchResult(status="skipped"),
            applied=False,
        )
