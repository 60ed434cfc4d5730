"""Booking edit sessions: load, edit, validate and submit a draft.

``BookingDraftController`` owns one mutable ``BookingDraft``. Edits are
applied synchronously and re-run validation straight away; only ``submit``
crosses an async boundary, into a ``BookingStore``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Union

from ..appearance import (
    AccessProvisioning,
    AppearanceScope,
    AppearanceType,
    access_mode,
    clean_text,
    coerce_provisioning,
    get_appearance_settings,
)
from ..schemas import (
    BookingDraft,
    BookingRecord,
    BookingSavePayload,
    GuestAccess,
    GuestDraft,
    GuestRecord,
    HostRef,
    PersonRef,
    ValidationReport,
)
from ..utils import coerce_whole_number, parse_instant
from . import roster
from .provisioning import resolve_roster
from .validation import validate, validate_shape

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "subject",
        "newsroom_name",
        "program_name",
        "talking_points",
        "start_at",
        "duration_mins",
        "location_url",
        "location_name",
        "location_address",
        "dial_info",
    }
)

DEFAULT_DURATION_MINS = 30


class BookingStoreError(RuntimeError):
    """Raised by a persistence collaborator when a save cannot be completed."""

    def __init__(self, message: str, *, status_code: int = 500, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class BookingNotFoundError(BookingStoreError):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking not found", status_code=404)
        self.booking_id = booking_id


class BookingValidationError(BookingStoreError):
    """The store re-validated the payload and refused it."""

    def __init__(self, message: str, *, report: Optional[ValidationReport] = None) -> None:
        super().__init__(message, status_code=400, detail=report)
        self.report = report


class BookingStore(Protocol):
    async def save(self, booking_id: str, payload: BookingSavePayload) -> BookingRecord:
        ...


def _coerce_type(value: AppearanceType, phone_enabled: bool) -> AppearanceType:
    if value is AppearanceType.PHONE and not phone_enabled:
        return AppearanceType.ONLINE
    return value


def load_draft(
    record: Union[BookingRecord, Mapping[str, Any]],
    *,
    phone_enabled: Optional[bool] = None,
) -> BookingDraft:
    """Normalise a stored booking into a fresh draft with no tombstones."""

    if not isinstance(record, BookingRecord):
        record = BookingRecord.model_validate(record)
    if phone_enabled is None:
        phone_enabled = get_appearance_settings().booking_phone_enabled

    scope = record.appearance_scope or AppearanceScope.UNIFIED
    provisioning = coerce_provisioning(
        scope, record.access_provisioning or AccessProvisioning.SHARED
    )
    unified_type = _coerce_type(record.appearance_type or AppearanceType.ONLINE, phone_enabled)
    if record.appearance_type is AppearanceType.PHONE and unified_type is not AppearanceType.PHONE:
        logger.debug("Booking %s: PHONE disabled, loading as ONLINE", record.id)

    guests: list[GuestDraft] = []
    for position, stored in enumerate(sorted(record.guests, key=lambda guest: guest.order)):
        guest = GuestDraft.model_validate(stored.model_dump())
        guest.order = position
        guest.appearance_type = _coerce_type(guest.appearance_type, phone_enabled)
        guests.append(guest)

    host = None
    if record.host_user_id or record.host_name:
        host = HostRef(id=record.host_user_id, name=record.host_name)

    return BookingDraft(
        id=record.id,
        org_id=record.org_id,
        subject=record.subject,
        newsroom_name=record.newsroom_name,
        program_name=record.program_name,
        talking_points=record.talking_points,
        start_at=record.start_at,
        duration_mins=record.duration_mins or DEFAULT_DURATION_MINS,
        appearance_scope=scope,
        access_provisioning=provisioning,
        appearance_type=unified_type,
        location_url=record.location_url,
        location_name=record.location_name,
        location_address=record.location_address,
        dial_info=record.dial_info,
        host=host,
        guests=guests,
    )


def build_save_payload(draft: BookingDraft) -> BookingSavePayload:
    """Shape the outbound payload for a draft that already passed validation.

    SHARED bookings never write guest-level details so the booking default
    stays the single source of truth; per-guest provisioned bookings always
    write exactly the one field matching each guest's effective type.
    """

    mode = access_mode(draft)
    writes_guest_details = mode.per_guest_scope or mode.per_guest_provisioned

    guests: list[GuestRecord] = []
    for position, guest in enumerate(draft.guests):
        kind = mode.appearance_for(guest.appearance_type)
        if writes_guest_details:
            fields = guest.connection(kind).to_fields()
        else:
            fields = dict.fromkeys(("join_url", "venue_name", "venue_address", "dial_info"))
        guests.append(
            GuestRecord(
                id=guest.id,
                user_id=guest.user_id,
                name=guest.name.strip(),
                kind=guest.kind,
                order=position,
                appearance_type=kind,
                **fields,
            )
        )

    host = draft.host or HostRef()
    return BookingSavePayload(
        subject=draft.subject,
        newsroom_name=draft.newsroom_name,
        program_name=clean_text(draft.program_name),
        talking_points=clean_text(draft.talking_points),
        start_at=parse_instant(draft.start_at),
        duration_mins=coerce_whole_number(draft.duration_mins),
        appearance_scope=mode.scope,
        access_provisioning=mode.provisioning,
        appearance_type=None if mode.per_guest_scope else mode.unified_type,
        location_url=clean_text(draft.location_url),
        location_name=clean_text(draft.location_name),
        location_address=clean_text(draft.location_address),
        dial_info=clean_text(draft.dial_info),
        host_user_id=host.id,
        host_name=clean_text(host.name),
        guests=guests,
        deleted_guest_ids=list(draft.deleted_guest_ids) or None,
    )


class SubmitStatus(enum.Enum):
    saved = "saved"
    shape_invalid = "shape_invalid"
    invalid = "invalid"
    failed = "failed"
    busy = "busy"


@dataclass(frozen=True)
class SubmitResult:
    status: SubmitStatus
    record: Optional[BookingRecord] = None
    report: Optional[ValidationReport] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SubmitStatus.saved


class BookingDraftController:
    """Drives one edit session against a ``BookingStore``."""

    def __init__(self, store: BookingStore, *, phone_enabled: Optional[bool] = None) -> None:
        self._store = store
        self._phone_enabled = phone_enabled
        self._draft: Optional[BookingDraft] = None
        self._submitting = False
        self.report = ValidationReport()
        self.shape_error: Optional[str] = None
        self.save_error: Optional[str] = None

    @property
    def draft(self) -> BookingDraft:
        if self._draft is None:
            raise RuntimeError("No booking loaded; call load() first")
        return self._draft

    @property
    def submitting(self) -> bool:
        return self._submitting

    def _revalidate(self) -> ValidationReport:
        self.report = validate(self.draft)
        return self.report

    # ----------------------------------------------------------------- load

    def load(self, record: Union[BookingRecord, Mapping[str, Any]]) -> BookingDraft:
        self._draft = load_draft(record, phone_enabled=self._phone_enabled)
        self.shape_error = None
        self.save_error = None
        self._revalidate()
        return self._draft

    # ------------------------------------------------------- booking fields

    def set_scope(self, scope: AppearanceScope) -> None:
        """Change appearance scope; PER_GUEST forces per-guest provisioning.

        Returning to UNIFIED leaves provisioning as it was.
        """

        draft = self.draft
        draft.appearance_scope = AppearanceScope(scope)
        draft.access_provisioning = coerce_provisioning(
            draft.appearance_scope, draft.access_provisioning
        )
        self._revalidate()

    def set_provisioning(self, provisioning: AccessProvisioning) -> None:
        draft = self.draft
        draft.access_provisioning = coerce_provisioning(
            draft.appearance_scope, AccessProvisioning(provisioning)
        )
        self._revalidate()

    def set_appearance_type(self, appearance_type: AppearanceType) -> None:
        self.draft.appearance_type = AppearanceType(appearance_type)
        self._revalidate()

    def update(self, **changes: Any) -> None:
        """Set plain booking fields such as ``subject`` or ``location_name``."""

        draft = self.draft
        for name, value in changes.items():
            if name not in EDITABLE_FIELDS:
                logger.debug("Ignoring unknown booking field %r on %s", name, draft.id)
                continue
            setattr(draft, name, value)
        self._revalidate()

    def set_host(self, host: Optional[Union[HostRef, PersonRef]]) -> None:
        if host is None:
            self.draft.host = None
        else:
            self.draft.host = HostRef(id=host.id, name=host.name)

    # --------------------------------------------------------------- roster

    def add_guest(self, person: PersonRef) -> bool:
        added = roster.add_guest(self.draft, person)
        self._revalidate()
        return added

    def remove_guest(self, index: int) -> Optional[GuestDraft]:
        removed = roster.remove_guest(self.draft, index)
        self._revalidate()
        return removed

    def move_guest(self, from_index: int, to_index: int) -> bool:
        moved = roster.move_guest(self.draft, from_index, to_index)
        self._revalidate()
        return moved

    def patch_guest(self, index: int, partial: Mapping[str, Any]) -> Optional[GuestDraft]:
        updated = roster.patch_guest(self.draft, index, partial)
        self._revalidate()
        return updated

    # -------------------------------------------------------------- display

    def effective_access(self) -> list[GuestAccess]:
        return resolve_roster(self.draft)

    # --------------------------------------------------------------- submit

    async def submit(self) -> SubmitResult:
        """Validate and hand the payload to the store.

        The payload is captured before the await, so edits made while the
        save is in flight do not leak into it. Those edits survive a
        successful save; an unchanged draft is reloaded from the stored record.
        Any failure leaves the draft untouched and ready for another attempt.
        """

        draft = self.draft
        if self._submitting:
            return SubmitResult(SubmitStatus.busy, message="A save is already in progress.")

        self.save_error = None
        self.shape_error = validate_shape(draft)
        if self.shape_error:
            return SubmitResult(SubmitStatus.shape_invalid, message=self.shape_error)

        report = self._revalidate()
        if not report.ok:
            return SubmitResult(SubmitStatus.invalid, report=report, message=report.summary)

        payload = build_save_payload(draft)
        snapshot = draft.model_copy(deep=True)
        self._submitting = True
        try:
            record = await self._store.save(draft.id, payload)
        except BookingStoreError as exc:
            logger.warning("Saving booking %s failed: %s", draft.id, exc)
            self.save_error = str(exc)
            report = exc.report if isinstance(exc, BookingValidationError) else None
            if report is not None:
                self.report = report
            return SubmitResult(SubmitStatus.failed, report=report, message=str(exc))
        except Exception:
            logger.exception("Unexpected failure saving booking %s", draft.id)
            self.save_error = "Could not save the booking. Please try again."
            return SubmitResult(SubmitStatus.failed, message=self.save_error)
        finally:
            self._submitting = False

        if self._draft == snapshot:
            self.load(record)
        else:
            logger.debug("Booking %s edited during save; keeping the live draft", draft.id)
            self._settle(payload, record)
        return SubmitResult(SubmitStatus.saved, record=record)

    def _settle(self, payload: BookingSavePayload, record: BookingRecord) -> None:
        """Fold a save result into a draft that changed while it was in flight."""

        draft = self.draft
        sent = set(payload.deleted_guest_ids or ())
        draft.deleted_guest_ids = [
            guest_id for guest_id in draft.deleted_guest_ids if guest_id not in sent
        ]

        stored_ids = {guest.user_id: guest.id for guest in record.guests if guest.user_id}
        inserted = {guest.user_id for guest in payload.guests if guest.id is None and guest.user_id}
        for guest in draft.guests:
            if guest.id is None and guest.user_id in inserted:
                guest.id = stored_ids.get(guest.user_id)
        self._revalidate()
