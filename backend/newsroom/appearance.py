"""Appearance and access-provisioning vocabulary for bookings.

A booking decides *how* each guest joins (``AppearanceType``) along two
booking-level axes: whether every guest shares one appearance type
(``AppearanceScope``) and whether connection details are supplied once for
the whole booking or by each guest (``AccessProvisioning``).

Connection details travel as a discriminated union keyed on ``kind`` so that
each variant only carries the fields that make sense for it.
"""

from __future__ import annotations

import enum
from abc import abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)

VENUE_DELIMITER = " · "

CONNECTION_FIELDS: tuple[str, ...] = ("join_url", "venue_name", "venue_address", "dial_info")


class AppearanceType(enum.Enum):
    ONLINE = "ONLINE"
    IN_PERSON = "IN_PERSON"
    PHONE = "PHONE"


class AppearanceScope(enum.Enum):
    UNIFIED = "UNIFIED"
    PER_GUEST = "PER_GUEST"


class AccessProvisioning(enum.Enum):
    SHARED = "SHARED"
    PER_GUEST = "PER_GUEST"


class AppearanceSettings(BaseSettings):
    """Feature switches that shape which appearance types are offered."""

    booking_phone_enabled: bool = True


@lru_cache
def get_appearance_settings() -> AppearanceSettings:
    return AppearanceSettings()


def available_appearance_types(phone_enabled: Optional[bool] = None) -> tuple[AppearanceType, ...]:
    """Return the appearance types an editor may offer."""

    if phone_enabled is None:
        phone_enabled = get_appearance_settings().booking_phone_enabled
    if phone_enabled:
        return tuple(AppearanceType)
    return (AppearanceType.ONLINE, AppearanceType.IN_PERSON)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Return ``value`` stripped, or ``None`` when nothing is left."""

    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


class _Connection(BaseModel):
    def to_fields(self) -> dict[str, Optional[str]]:
        """Flatten into the four nullable connection columns."""

        fields: dict[str, Optional[str]] = dict.fromkeys(CONNECTION_FIELDS)
        for name, value in self.model_dump(exclude={"kind"}).items():
            fields[name] = clean_text(value)
        return fields

    @property
    @abstractmethod
    def display_value(self) -> Optional[str]:
        """The single string shown for this connection, or ``None``."""


class OnlineConnection(_Connection):
    kind: Literal["ONLINE"] = "ONLINE"
    join_url: Optional[str] = None

    @property
    def display_value(self) -> Optional[str]:
        return clean_text(self.join_url)


class InPersonConnection(_Connection):
    kind: Literal["IN_PERSON"] = "IN_PERSON"
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None

    @property
    def display_value(self) -> Optional[str]:
        parts = [part for part in (clean_text(self.venue_name), clean_text(self.venue_address)) if part]
        return VENUE_DELIMITER.join(parts) or None


class PhoneConnection(_Connection):
    kind: Literal["PHONE"] = "PHONE"
    dial_info: Optional[str] = None

    @property
    def display_value(self) -> Optional[str]:
        return clean_text(self.dial_info)


ConnectionPayload = Annotated[
    Union[OnlineConnection, InPersonConnection, PhoneConnection],
    Field(discriminator="kind"),
]

_VARIANTS: dict[AppearanceType, type[_Connection]] = {
    AppearanceType.ONLINE: OnlineConnection,
    AppearanceType.IN_PERSON: InPersonConnection,
    AppearanceType.PHONE: PhoneConnection,
}


def connection_for(kind: AppearanceType, values: Mapping[str, Any]) -> _Connection:
    """Build the variant for ``kind`` from flat ``values``, ignoring foreign fields."""

    variant = _VARIANTS[kind]
    own_fields = {name: values.get(name) for name in variant.model_fields if name != "kind"}
    return variant(**own_fields)


def coerce_provisioning(
    scope: AppearanceScope, provisioning: AccessProvisioning
) -> AccessProvisioning:
    """Per-guest scope always implies per-guest provisioning."""

    if scope is AppearanceScope.PER_GUEST:
        return AccessProvisioning.PER_GUEST
    return provisioning


@dataclass(frozen=True, slots=True)
class AccessMode:
    """Selectors derived from a booking's scope, provisioning and unified type.

    Computed once per validation or rendering pass so the editor, the
    read-only view and the persistence layer all read the same answers.
    """

    scope: AppearanceScope
    provisioning: AccessProvisioning
    unified_type: AppearanceType

    @property
    def per_guest_scope(self) -> bool:
        return self.scope is AppearanceScope.PER_GUEST

    @property
    def per_guest_provisioned(self) -> bool:
        return self.provisioning is AccessProvisioning.PER_GUEST

    @property
    def shared_defaults(self) -> bool:
        """Booking-level details stand in for empty guest details."""

        return (
            self.scope is AppearanceScope.UNIFIED
            and self.provisioning is AccessProvisioning.SHARED
        )

    @property
    def unified_in_person(self) -> bool:
        return self.shared_defaults and self.unified_type is AppearanceType.IN_PERSON

    def appearance_for(self, guest_type: AppearanceType) -> AppearanceType:
        if self.per_guest_scope:
            return guest_type
        return self.unified_type


def access_mode(booking: Any) -> AccessMode:
    """Derive the ``AccessMode`` for any booking-shaped object."""

    return AccessMode(
        scope=booking.appearance_scope,
        provisioning=booking.access_provisioning,
        unified_type=booking.appearance_type or AppearanceType.ONLINE,
    )
