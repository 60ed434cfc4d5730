"""Organization role lookups and the booking access rules built on them."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..models import OrgRole
from ..schemas import BookingRecord

if TYPE_CHECKING:
    from ..auth import Viewer

EDIT_ROLES = frozenset({OrgRole.OWNER, OrgRole.ADMIN, OrgRole.PRODUCER})
STAFF_ROLES = EDIT_ROLES | {OrgRole.HOST}


async def load_roles(db: AsyncSession, user_id: str) -> dict[str, frozenset[OrgRole]]:
    """Return ``{org_id: roles}`` for every organization ``user_id`` belongs to."""

    result = await db.execute(
        select(models.OrganizationMembership.org_id, models.OrganizationMembership.role)
        .where(models.OrganizationMembership.user_id == user_id)
        .order_by(models.OrganizationMembership.created_at)
    )
    grouped: dict[str, set[OrgRole]] = {}
    for org_id, role in result.all():
        grouped.setdefault(org_id, set()).add(role)
    return {org_id: frozenset(roles) for org_id, roles in grouped.items()}


def can_edit_booking(viewer: "Viewer", org_id: Optional[str]) -> bool:
    if not viewer.is_signed_in or not org_id:
        return False
    return bool(viewer.roles_in(org_id) & EDIT_ROLES)


def can_read_booking(viewer: "Viewer", record: BookingRecord) -> bool:
    """Staff and hosts of the org, the mirrored expert, or any guest on it."""

    if not viewer.is_signed_in:
        return False
    if record.org_id and viewer.roles_in(record.org_id) & STAFF_ROLES:
        return True
    if viewer.user_id is None:
        return False
    if record.expert_user_id == viewer.user_id:
        return True
    return any(guest.user_id == viewer.user_id for guest in record.guests)


def staff_org_id(viewer: "Viewer") -> Optional[str]:
    """The org used for directory lookups: the active org, else the first staffed one."""

    if viewer.active_org_id:
        return viewer.active_org_id
    for org_id, roles in viewer.roles.items():
        if roles & STAFF_ROLES:
            return org_id
    return None
