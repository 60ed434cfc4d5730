"""Ordered guest roster operations for a booking draft.

Every operation keeps ``order`` dense (``0..n-1`` matching list position)
and never raises on a stale index; it simply does nothing.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from ..appearance import CONNECTION_FIELDS, AppearanceType
from ..schemas import BookingDraft, GuestDraft, PersonRef

logger = logging.getLogger(__name__)

# Identity and position are owned by the roster, not by callers.
_PROTECTED_FIELDS = frozenset({"id", "order", "user_id"})

_FIELD_NAMES: dict[str, str] = {name: name for name in GuestDraft.model_fields}
_FIELD_NAMES.update(
    {field.alias: name for name, field in GuestDraft.model_fields.items() if field.alias}
)


def reindex(guests: Iterable[GuestDraft]) -> None:
    for position, guest in enumerate(guests):
        guest.order = position


def _in_range(draft: BookingDraft, index: int) -> bool:
    return 0 <= index < len(draft.guests)


def add_guest(draft: BookingDraft, person: PersonRef) -> bool:
    """Append ``person`` unless already on the roster. Returns whether it was added."""

    if any(guest.user_id == person.id for guest in draft.guests):
        logger.debug("Guest %s already on booking %s; add ignored", person.id, draft.id)
        return False

    draft.guests.append(
        GuestDraft(
            user_id=person.id,
            name=person.name,
            kind=person.kind,
            order=len(draft.guests),
            appearance_type=AppearanceType.ONLINE,
        )
    )
    return True


def remove_guest(draft: BookingDraft, index: int) -> Optional[GuestDraft]:
    """Remove the guest at ``index`` and tombstone its stored id, if any."""

    if not _in_range(draft, index):
        return None

    removed = draft.guests.pop(index)
    if removed.id and removed.id not in draft.deleted_guest_ids:
        draft.deleted_guest_ids.append(removed.id)
    reindex(draft.guests)
    return removed


def move_guest(draft: BookingDraft, from_index: int, to_index: int) -> bool:
    """Move a guest to a new position, shifting the others."""

    if not _in_range(draft, from_index) or not _in_range(draft, to_index):
        return False
    if from_index == to_index:
        return True

    guest = draft.guests.pop(from_index)
    draft.guests.insert(to_index, guest)
    reindex(draft.guests)
    return True


def patch_guest(
    draft: BookingDraft, index: int, partial: Mapping[str, Any]
) -> Optional[GuestDraft]:
    """Merge ``partial`` (snake_case or camelCase keys) into the guest at ``index``.

    Changing ``appearance_type`` clears every connection field that the patch
    itself does not set, so no detail from the previous type survives.
    Returns the updated guest, or ``None`` when nothing was applied.
    """

    if not _in_range(draft, index):
        return None

    changes: dict[str, Any] = {}
    for key, value in partial.items():
        name = _FIELD_NAMES.get(key)
        if name is None or name in _PROTECTED_FIELDS:
            logger.debug("Ignoring guest patch key %r on booking %s", key, draft.id)
            continue
        changes[name] = value

    current = draft.guests[index]
    merged = current.model_dump()
    merged.update(changes)

    try:
        updated = GuestDraft.model_validate(merged)
    except ValidationError as exc:
        logger.debug("Rejected guest patch on booking %s: %s", draft.id, exc)
        return None

    if updated.appearance_type is not current.appearance_type:
        for name in CONNECTION_FIELDS:
            if name not in changes:
                setattr(updated, name, None)

    draft.guests[index] = updated
    return updated
