"""Endpoints for reading, checking and saving bookings."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..appearance import coerce_provisioning
from ..auth import Viewer, require_viewer
from ..database import get_session
from ..services.booking_store import SqlBookingStore
from ..services.drafts import BookingStoreError, BookingValidationError, load_draft
from ..services.memberships import can_edit_booking, can_read_booking
from ..services.provisioning import resolve_roster
from ..services.validation import validate, validate_shape

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def get_booking_store(session: AsyncSession = Depends(get_session)) -> SqlBookingStore:
    return SqlBookingStore(session)


def _http_error(exc: BookingStoreError) -> HTTPException:
    if isinstance(exc, BookingValidationError) and exc.report is not None:
        detail = {
            "message": str(exc),
            "report": exc.report.model_dump(mode="json", by_alias=True),
        }
        return HTTPException(status_code=exc.status_code, detail=detail)
    return HTTPException(status_code=exc.status_code, detail=str(exc))


async def _readable_record(
    booking_id: str, viewer: Viewer, store: SqlBookingStore
) -> schemas.BookingRecord:
    try:
        record = await store.get(booking_id)
    except BookingStoreError as exc:
        raise _http_error(exc) from exc
    # Bookings the viewer may not see are indistinguishable from missing ones.
    if not can_read_booking(viewer, record):
        raise HTTPException(status_code=404, detail="Booking not found")
    return record


@router.get("/{booking_id}", response_model=schemas.BookingReadResponse)
async def read_booking(
    booking_id: str,
    viewer: Viewer = Depends(require_viewer),
    store: SqlBookingStore = Depends(get_booking_store),
) -> schemas.BookingReadResponse:
    record = await _readable_record(booking_id, viewer, store)
    draft = load_draft(record)
    return schemas.BookingReadResponse(
        booking=record,
        access=resolve_roster(draft),
        can_edit=can_edit_booking(viewer, record.org_id),
    )


@router.api_route(
    "/{booking_id}",
    methods=["PATCH", "PUT"],
    response_model=schemas.BookingSaveResponse,
)
async def save_booking(
    booking_id: str,
    payload: schemas.BookingSavePayload,
    viewer: Viewer = Depends(require_viewer),
    store: SqlBookingStore = Depends(get_booking_store),
) -> schemas.BookingSaveResponse:
    record = await _readable_record(booking_id, viewer, store)
    if not can_edit_booking(viewer, record.org_id):
        logger.warning("User %s may not edit booking %s", viewer.user_id, booking_id)
        raise HTTPException(
            status_code=403, detail="You do not have permission to perform this action"
        )

    try:
        saved = await store.save(booking_id, payload)
    except BookingStoreError as exc:
        logger.warning("Rejected save for booking %s: %s", booking_id, exc)
        raise _http_error(exc) from exc
    return schemas.BookingSaveResponse(booking=saved)


@router.post("/{booking_id}/check", response_model=schemas.DraftCheckResponse)
async def check_draft(
    booking_id: str,
    draft: schemas.DraftCheckRequest,
    viewer: Viewer = Depends(require_viewer),
) -> schemas.DraftCheckResponse:
    draft = draft.model_copy(
        update={
            "id": booking_id,
            "access_provisioning": coerce_provisioning(
                draft.appearance_scope, draft.access_provisioning
            ),
        }
    )
    return schemas.DraftCheckResponse(
        shape_error=validate_shape(draft),
        report=validate(draft),
        access=resolve_roster(draft),
    )
