"""SQLAlchemy-backed persistence for booking saves."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models
from ..appearance import AppearanceScope, AppearanceType, CONNECTION_FIELDS, coerce_provisioning
from ..schemas import (
    BookingDraft,
    BookingRecord,
    BookingSavePayload,
    GuestDraft,
    GuestRecord,
    HostRef,
)
from .drafts import BookingNotFoundError, BookingStoreError, BookingValidationError
from .validation import validate

logger = logging.getLogger(__name__)

DUPLICATE_GUEST = "Duplicate internal guest in the same booking."
INVALID_REFERENCES = "One or more user references are invalid."
UNIFIED_TYPE_REQUIRED = "appearanceType is required when appearanceScope=UNIFIED"


def draft_from_payload(booking_id: str, payload: BookingSavePayload) -> BookingDraft:
    """Rebuild the draft a payload was produced from, for re-validation."""

    return BookingDraft(
        id=booking_id,
        subject=payload.subject,
        newsroom_name=payload.newsroom_name,
        program_name=payload.program_name,
        talking_points=payload.talking_points,
        start_at=payload.start_at,
        duration_mins=payload.duration_mins,
        appearance_scope=payload.appearance_scope,
        access_provisioning=coerce_provisioning(
            payload.appearance_scope, payload.access_provisioning
        ),
        appearance_type=payload.appearance_type or AppearanceType.ONLINE,
        location_url=payload.location_url,
        location_name=payload.location_name,
        location_address=payload.location_address,
        dial_info=payload.dial_info,
        host=HostRef(id=payload.host_user_id, name=payload.host_name),
        guests=[GuestDraft.model_validate(guest.model_dump()) for guest in payload.guests],
    )


def find_duplicate_user_ids(guests: Iterable[GuestRecord]) -> list[str]:
    counts = Counter(guest.user_id for guest in guests if guest.user_id)
    return sorted(user_id for user_id, count in counts.items() if count > 1)


def expert_mirror(guests: list[GuestRecord]) -> tuple[Optional[str], str]:
    """Legacy single-expert columns: first linked guest, else first guest's name."""

    for guest in guests:
        if guest.user_id:
            return guest.user_id, guest.name
    if guests:
        return None, guests[0].name
    return None, ""


def to_record(booking: models.Booking) -> BookingRecord:
    record = BookingRecord.model_validate(booking)
    record.guests.sort(key=lambda guest: guest.order)
    return record


class SqlBookingStore:
    """``BookingStore`` implementation over an ``AsyncSession``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, booking_id: str) -> models.Booking:
        result = await self._session.execute(
            select(models.Booking)
            .options(selectinload(models.Booking.guests))
            .where(models.Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def get(self, booking_id: str) -> BookingRecord:
        return to_record(await self._load(booking_id))

    async def _host_label(self, user_id: str) -> Optional[str]:
        user = await self._session.get(models.User, user_id)
        return user.label if user is not None else None

    def _check(self, booking_id: str, payload: BookingSavePayload) -> None:
        if payload.appearance_scope is AppearanceScope.UNIFIED and payload.appearance_type is None:
            raise BookingValidationError(UNIFIED_TYPE_REQUIRED)

        report = validate(draft_from_payload(booking_id, payload))
        if not report.ok:
            raise BookingValidationError(report.summary or "Invalid booking", report=report)

        duplicates = find_duplicate_user_ids(payload.guests)
        if duplicates:
            logger.debug("Booking %s: duplicate guest users %s", booking_id, duplicates)
            raise BookingValidationError(DUPLICATE_GUEST)

    async def _reconcile_guests(
        self, booking: models.Booking, payload: BookingSavePayload
    ) -> None:
        stored = {row.id: row for row in booking.guests}
        tombstones = set(payload.deleted_guest_ids or ())
        unknown = tombstones.difference(stored)
        if unknown:
            logger.debug("Booking %s: ignoring foreign tombstones %s", booking.id, sorted(unknown))

        keep = {
            guest.id for guest in payload.guests if guest.id in stored and guest.id not in tombstones
        }
        removed = [row for row in booking.guests if row.id not in keep]
        for row in removed:
            booking.guests.remove(row)
        # Deletes go out first so a re-added user does not trip the unique index.
        await self._session.flush()

        for position, guest in enumerate(payload.guests):
            row = stored.get(guest.id) if guest.id in keep else None
            if row is None:
                row = models.BookingGuest(booking_id=booking.id)
                booking.guests.append(row)
            row.user_id = guest.user_id
            row.name = guest.name
            row.kind = guest.kind
            row.order = position
            row.appearance_type = guest.appearance_type
            for name in CONNECTION_FIELDS:
                setattr(row, name, getattr(guest, name))

        booking.guests.sort(key=lambda row: row.order)

    async def save(self, booking_id: str, payload: BookingSavePayload) -> BookingRecord:
        booking = await self._load(booking_id)
        self._check(booking_id, payload)

        scope = payload.appearance_scope
        booking.subject = payload.subject
        booking.newsroom_name = payload.newsroom_name
        booking.program_name = payload.program_name
        booking.talking_points = payload.talking_points
        booking.start_at = payload.start_at
        booking.duration_mins = payload.duration_mins
        booking.appearance_scope = scope
        booking.access_provisioning = coerce_provisioning(scope, payload.access_provisioning)
        booking.appearance_type = (
            None if scope is AppearanceScope.PER_GUEST else payload.appearance_type
        )
        booking.location_url = payload.location_url
        booking.location_name = payload.location_name
        booking.location_address = payload.location_address
        booking.dial_info = payload.dial_info

        booking.host_user_id = payload.host_user_id
        host_name = payload.host_name
        if payload.host_user_id and not host_name:
            host_name = await self._host_label(payload.host_user_id)
        booking.host_name = host_name

        try:
            await self._reconcile_guests(booking, payload)
            booking.expert_user_id, booking.expert_name = expert_mirror(payload.guests)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning("Booking %s rejected by the database: %s", booking_id, exc.orig)
            raise BookingStoreError(INVALID_REFERENCES, status_code=400) from exc

        logger.info(
            "Saved booking %s (%s/%s, %d guests)",
            booking_id,
            scope.value,
            booking.access_provisioning.value,
            len(payload.guests),
        )
        return to_record(booking)
