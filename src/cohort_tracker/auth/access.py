"""Role resolution and authorization for organization-scoped operations.

Every protected route depends on ``require_role(...)``, which resolves the
caller's role for the active organization from the membership table on each
request (through a short-lived cache) and checks it against the operation's
requirement. Roles embedded in tokens are never consulted.
"""

import logging
import time
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.config import settings
from cohort_tracker.exceptions import ForbiddenError
from cohort_tracker.models import OrganizationMember, OrganizationRole, User

logger = logging.getLogger(__name__)

ANY_MEMBER = frozenset(
    {OrganizationRole.STUDENT, OrganizationRole.PM, OrganizationRole.ADMIN}
)
PM_OR_ADMIN = frozenset({OrganizationRole.PM, OrganizationRole.ADMIN})
ADMIN_ONLY = frozenset({OrganizationRole.ADMIN})


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller for a single request."""

    user_id: str
    active_org_id: str | None = None


@dataclass(frozen=True)
class Caller:
    """An authorized caller: context plus the role resolved for it."""

    user_id: str
    org_id: str
    role: OrganizationRole

    @property
    def is_manager(self) -> bool:
        """True for roles that author projects and manage assignments."""
        return self.role in PM_OR_ADMIN


class RoleCache:
    """TTL cache of membership roles keyed by (user_id, org_id).

    Switching the active organization changes the key, and membership
    writes must call ``invalidate`` so a revoked role is never served.
    Every invalidation bumps ``generation``; a lookup that started under an
    older generation must not store its result.
    """

    _MISSING = object()

    def __init__(self, ttl_seconds: float = 30.0):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[tuple[str, str], tuple[OrganizationRole | None, float]] = {}
        self.generation = 0

    def get(self, user_id: str, org_id: str):
        entry = self._entries.get((user_id, org_id))
        if entry is None:
            return self._MISSING
        role, expires_at = entry
        if time.monotonic() >= expires_at:
            self._entries.pop((user_id, org_id), None)
            return self._MISSING
        return role

    def set(
        self,
        user_id: str,
        org_id: str,
        role: OrganizationRole | None,
        generation: int | None = None,
    ) -> None:
        if self.ttl_seconds <= 0:
            return
        if generation is not None and generation != self.generation:
            return
        self._entries[(user_id, org_id)] = (role, time.monotonic() + self.ttl_seconds)

    def invalidate(self, user_id: str | None = None, org_id: str | None = None) -> None:
        """Drop entries matching the given user and/or organization."""
        self.generation += 1
        if user_id is None and org_id is None:
            self._entries.clear()
            return
        for key in list(self._entries):
            if (user_id is None or key[0] == user_id) and (
                org_id is None or key[1] == org_id
            ):
                del self._entries[key]

    def is_cached(self, user_id: str, org_id: str) -> bool:
        return self.get(user_id, org_id) is not self._MISSING


role_cache = RoleCache(ttl_seconds=settings.role_cache_ttl_seconds)


class RoleResolver(Protocol):
    """Derives the caller's role for the active organization."""

    async def resolve(self, db: AsyncSession, ctx: RequestContext) -> OrganizationRole:
        ...


class MembershipRoleResolver:
    """Reads roles from the organization_members table.

    Membership in the active organization wins. Without an active
    organization the user's legacy global role is used. Everything else,
    including a missing membership or a failed lookup, resolves to student.
    """

    def __init__(self, cache: RoleCache | None = None):
        self.cache = cache

    async def resolve(self, db: AsyncSession, ctx: RequestContext) -> OrganizationRole:
        if ctx.active_org_id is None:
            return await self._legacy_role(db, ctx.user_id)

        role = await self._membership_role(db, ctx.user_id, ctx.active_org_id)
        return role if role is not None else OrganizationRole.STUDENT

    async def _membership_role(
        self, db: AsyncSession, user_id: str, org_id: str
    ) -> OrganizationRole | None:
        if self.cache is not None:
            cached = self.cache.get(user_id, org_id)
            if cached is not RoleCache._MISSING:
                return cached

        generation = self.cache.generation if self.cache is not None else None
        try:
            result = await db.execute(
                select(OrganizationMember.role).where(
                    OrganizationMember.user_id == user_id,
                    OrganizationMember.organization_id == org_id,
                )
            )
            role = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.warning(
                "Role lookup failed for user %s in org %s",
                user_id,
                org_id,
                exc_info=True,
            )
            return None

        if self.cache is not None:
            self.cache.set(user_id, org_id, role, generation=generation)
        return role

    async def _legacy_role(self, db: AsyncSession, user_id: str) -> OrganizationRole:
        try:
            user = await db.get(User, user_id)
        except SQLAlchemyError:
            logger.warning(
                "Legacy role lookup failed for user %s", user_id, exc_info=True
            )
            return OrganizationRole.STUDENT
        if user is None or user.legacy_role is None:
            return OrganizationRole.STUDENT
        return user.legacy_role


default_resolver = MembershipRoleResolver(cache=role_cache)


async def resolve_role(
    db: AsyncSession,
    ctx: RequestContext,
    resolver: RoleResolver = default_resolver,
) -> OrganizationRole:
    """Effective role of the caller. Never raises, never elevates."""
    return await resolver.resolve(db, ctx)


async def authorize(
    db: AsyncSession,
    ctx: RequestContext,
    allowed: frozenset[OrganizationRole],
    resolver: RoleResolver = default_resolver,
) -> Caller:
    """Gate an organization-scoped operation.

    Raises:
        ForbiddenError: No active organization, or the caller's role is not
            in ``allowed``.
    """
    if ctx.active_org_id is None:
        raise ForbiddenError("No active organization selected")

    role = await resolver.resolve(db, ctx)
    if role not in allowed:
        logger.info(
            "Denied %s role for user %s in org %s",
            role.value,
            ctx.user_id,
            ctx.active_org_id,
        )
        raise ForbiddenError("Insufficient permissions")

    return Caller(user_id=ctx.user_id, org_id=ctx.active_org_id, role=role)
