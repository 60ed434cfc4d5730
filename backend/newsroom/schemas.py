"""Pydantic models for booking drafts, stored records and API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, computed_field

from .appearance import (
    AccessProvisioning,
    AppearanceScope,
    AppearanceType,
    connection_for,
)
from .models import ParticipantKind


def _to_camel(string: str) -> str:
    """Convert ``snake_case`` strings to ``camelCase``."""

    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base model that renders JSON keys using ``camelCase``."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PersonRef(CamelModel):
    """A directory hit: identity plus label, treated as opaque by the core."""

    id: str
    name: str
    kind: ParticipantKind = ParticipantKind.EXPERT


class HostRef(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None


class GuestBase(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: str = ""
    kind: ParticipantKind = ParticipantKind.EXPERT
    order: int = 0
    appearance_type: AppearanceType = AppearanceType.ONLINE
    join_url: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    dial_info: Optional[str] = None

    def connection(self, kind: Optional[AppearanceType] = None):
        """Return this guest's own details as the variant for ``kind``."""

        return connection_for(kind or self.appearance_type, self.__dict__)


class GuestDraft(GuestBase):
    # Editor-only scratch text; never sent to the store.
    notes: Optional[str] = None


class GuestRecord(GuestBase):
    """A guest row as persisted and as sent in a save payload."""


class BookingDraft(CamelModel):
    """Mutable booking state owned by one edit session."""

    id: str
    org_id: Optional[str] = None
    subject: str = ""
    newsroom_name: str = ""
    program_name: Optional[str] = None
    talking_points: Optional[str] = None
    start_at: Optional[Union[datetime, str]] = None
    duration_mins: Optional[Union[int, float, str]] = 30

    appearance_scope: AppearanceScope = AppearanceScope.UNIFIED
    access_provisioning: AccessProvisioning = AccessProvisioning.SHARED
    appearance_type: AppearanceType = AppearanceType.ONLINE

    location_url: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    dial_info: Optional[str] = None

    host: Optional[HostRef] = None
    guests: list[GuestDraft] = Field(default_factory=list)
    deleted_guest_ids: list[str] = Field(default_factory=list)

    def default_connection(self, kind: AppearanceType):
        """Booking-level defaults expressed as the variant for ``kind``."""

        return connection_for(
            kind,
            {
                "join_url": self.location_url,
                "venue_name": self.location_name,
                "venue_address": self.location_address,
                "dial_info": self.dial_info,
            },
        )


class DraftCheckRequest(BookingDraft):
    """A draft posted for checking; the booking id comes from the path."""

    id: Optional[str] = None


class BookingRecord(CamelModel):
    """A booking as stored; scope and provisioning may be absent on old rows."""

    id: str
    org_id: Optional[str] = None
    subject: str = ""
    newsroom_name: str = ""
    program_name: Optional[str] = None
    talking_points: Optional[str] = None
    start_at: Optional[datetime] = None
    duration_mins: Optional[int] = None
    appearance_scope: Optional[AppearanceScope] = None
    access_provisioning: Optional[AccessProvisioning] = None
    appearance_type: Optional[AppearanceType] = None
    location_url: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    dial_info: Optional[str] = None
    host_user_id: Optional[str] = None
    host_name: Optional[str] = None
    expert_user_id: Optional[str] = None
    expert_name: Optional[str] = None
    guests: list[GuestRecord] = Field(default_factory=list)


Subject = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=300)]
NewsroomName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=200)]


class BookingSavePayload(CamelModel):
    """Outbound payload handed to the persistence collaborator."""

    subject: Subject
    newsroom_name: NewsroomName
    program_name: Optional[str] = Field(None, max_length=120)
    talking_points: Optional[str] = Field(None, max_length=2000)
    start_at: datetime
    duration_mins: int = Field(..., ge=5, le=600)

    appearance_scope: AppearanceScope
    access_provisioning: AccessProvisioning
    appearance_type: Optional[AppearanceType] = None

    location_url: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    dial_info: Optional[str] = None

    host_user_id: Optional[str] = None
    host_name: Optional[str] = None

    guests: list[GuestRecord] = Field(default_factory=list)
    deleted_guest_ids: Optional[list[str]] = None


class EffectiveAccess(CamelModel):
    kind: AppearanceType
    value: Optional[str] = None
    used_fallback: bool = False


class GuestAccess(EffectiveAccess):
    guest_id: Optional[str] = None
    order: int


class ValidationReport(CamelModel):
    """Field-level violations keyed by camelCase field name."""

    booking_errors: dict[str, str] = Field(default_factory=dict)
    guest_errors: list[dict[str, str]] = Field(default_factory=list)
    summary: Optional[str] = None

    @computed_field
    @property
    def ok(self) -> bool:
        return not self.booking_errors and not any(self.guest_errors)


class BookingReadResponse(CamelModel):
    booking: BookingRecord
    access: list[GuestAccess]
    can_edit: bool


class BookingSaveResponse(CamelModel):
    booking: BookingRecord


class DraftCheckResponse(CamelModel):
    shape_error: Optional[str] = None
    report: ValidationReport
    access: list[GuestAccess]


class DirectoryItem(CamelModel):
    id: str
    name: str
    kind: ParticipantKind


class DirectorySearchResponse(CamelModel):
    items: list[DirectoryItem]
    count: int


class HostSearchResponse(CamelModel):
    items: list[HostRef]
    count: int
    next_cursor: Optional[str] = None
