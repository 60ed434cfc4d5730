"""Resolve the connection details a guest actually uses.

The only rule that couples booking-level defaults to what is shown for a
guest lives here: an empty guest value borrows the booking default only when
the booking is UNIFIED *and* provisioned SHARED. A UNIFIED booking that is
provisioned per guest never borrows.
"""

from __future__ import annotations

from typing import Optional

from ..appearance import AccessMode, access_mode
from ..schemas import BookingDraft, EffectiveAccess, GuestAccess, GuestBase


def resolve_effective(
    booking: BookingDraft,
    guest: GuestBase,
    *,
    mode: Optional[AccessMode] = None,
) -> EffectiveAccess:
    """Return ``{kind, value, usedFallback}`` for ``guest`` within ``booking``."""

    mode = mode or access_mode(booking)
    kind = mode.appearance_for(guest.appearance_type)

    own = guest.connection(kind).display_value
    if own is not None:
        return EffectiveAccess(kind=kind, value=own, used_fallback=False)

    if mode.shared_defaults:
        fallback = booking.default_connection(kind).display_value
        if fallback is not None:
            return EffectiveAccess(kind=kind, value=fallback, used_fallback=True)

    return EffectiveAccess(kind=kind, value=None, used_fallback=False)


def resolve_roster(booking: BookingDraft) -> list[GuestAccess]:
    """Resolve every guest in roster order for display."""

    mode = access_mode(booking)
    resolved: list[GuestAccess] = []
    for guest in booking.guests:
        effective = resolve_effective(booking, guest, mode=mode)
        resolved.append(
            GuestAccess(
                guest_id=guest.id,
                order=guest.order,
                **effective.model_dump(),
            )
        )
    return resolved
