"""Person directory and host lookups scoped to one organization."""

from __future__ import annotations

import enum
import logging
from typing import Iterable, Optional

from sqlalchemy import Select, func, or_, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..models import OrgRole, ParticipantKind
from ..schemas import DirectoryItem, DirectorySearchResponse, HostRef, HostSearchResponse

logger = logging.getLogger(__name__)

DEFAULT_TAKE = 20
MAX_TAKE = 50


class DirectoryMode(str, enum.Enum):
    all = "all"
    expert = "expert"
    reporter = "reporter"


# Reporters are the org's producers.
_ROLE_FOR_KIND = {
    ParticipantKind.EXPERT: OrgRole.EXPERT,
    ParticipantKind.REPORTER: OrgRole.PRODUCER,
}


def clamp_take(take: Optional[int], *, default: int = DEFAULT_TAKE) -> int:
    if take is None:
        return default
    return max(1, min(MAX_TAKE, take))


def _sort_name():
    return func.coalesce(
        models.User.display_name, models.User.name, models.User.email, ""
    )


def _members_query(org_id: str, role: OrgRole, query: str) -> Select:
    stmt = (
        select(models.User)
        .join(
            models.OrganizationMembership,
            models.OrganizationMembership.user_id == models.User.id,
        )
        .where(
            models.OrganizationMembership.org_id == org_id,
            models.OrganizationMembership.role == role,
        )
    )
    term = query.strip()
    if term:
        pattern = f"%{term}%"
        stmt = stmt.where(
            or_(
                models.User.name.ilike(pattern),
                models.User.display_name.ilike(pattern),
                models.User.email.ilike(pattern),
            )
        )
    return stmt


async def _search_kind(
    db: AsyncSession, org_id: str, kind: ParticipantKind, query: str, take: int
) -> list[DirectoryItem]:
    stmt = (
        _members_query(org_id, _ROLE_FOR_KIND[kind], query)
        .order_by(_sort_name(), models.User.id)
        .limit(take)
    )
    result = await db.execute(stmt)
    return [
        DirectoryItem(id=user.id, name=user.label, kind=kind)
        for user in result.scalars().unique()
    ]


async def search_experts(
    db: AsyncSession, org_id: str, query: str = "", take: int = DEFAULT_TAKE
) -> list[DirectoryItem]:
    return await _search_kind(db, org_id, ParticipantKind.EXPERT, query, clamp_take(take))


async def search_reporters(
    db: AsyncSession, org_id: str, query: str = "", take: int = DEFAULT_TAKE
) -> list[DirectoryItem]:
    return await _search_kind(db, org_id, ParticipantKind.REPORTER, query, clamp_take(take))


def merge_directory_results(*groups: Iterable[DirectoryItem]) -> list[DirectoryItem]:
    """Concatenate result groups, keeping the first occurrence of each id."""

    seen: set[str] = set()
    merged: list[DirectoryItem] = []
    for group in groups:
        for item in group:
            if item.id in seen:
                continue
            seen.add(item.id)
            merged.append(item)
    return merged


async def search_directory(
    db: AsyncSession,
    org_id: str,
    query: str = "",
    *,
    mode: DirectoryMode = DirectoryMode.all,
    take: int = DEFAULT_TAKE,
) -> DirectorySearchResponse:
    take = clamp_take(take)
    if mode is DirectoryMode.expert:
        items = await search_experts(db, org_id, query, take)
    elif mode is DirectoryMode.reporter:
        items = await search_reporters(db, org_id, query, take)
    else:
        experts = await search_experts(db, org_id, query, take)
        reporters = await search_reporters(db, org_id, query, take)
        items = merge_directory_results(experts, reporters)
    return DirectorySearchResponse(items=items, count=len(items))


async def search_hosts(
    db: AsyncSession,
    org_id: str,
    query: str = "",
    *,
    take: Optional[int] = None,
    cursor: Optional[str] = None,
) -> HostSearchResponse:
    """Page through the org's HOST members ordered by (name, id)."""

    take = clamp_take(take)
    sort_name = _sort_name()
    stmt = _members_query(org_id, OrgRole.HOST, query)

    if cursor:
        cursor_name = (
            await db.execute(select(sort_name).where(models.User.id == cursor))
        ).scalar_one_or_none()
        if cursor_name is None:
            logger.debug("Host cursor %s does not match a user; starting from the top", cursor)
        else:
            stmt = stmt.where(tuple_(sort_name, models.User.id) > tuple_(cursor_name, cursor))

    result = await db.execute(stmt.order_by(sort_name, models.User.id).limit(take))
    users = list(result.scalars().unique())
    items = [HostRef(id=user.id, name=user.label) for user in users]
    next_cursor = items[-1].id if len(items) == take else None
    return HostSearchResponse(items=items, count=len(items), next_cursor=next_cursor)
