"""SQLAlchemy ORM models for the newsroom booking backend."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .appearance import AccessProvisioning, AppearanceScope, AppearanceType
from .utils import generate_id


class Base(DeclarativeBase):
    pass


class OrgRole(enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    PRODUCER = "PRODUCER"
    EXPERT = "EXPERT"
    HOST = "HOST"


class ParticipantKind(enum.Enum):
    EXPERT = "EXPERT"
    REPORTER = "REPORTER"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Stored as text with a check constraint; schema.sql mirrors this.
    return Enum(enum_cls, name=name, native_enum=False, length=32)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Organization(Base, TimestampMixin):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String, nullable=False)

    memberships: Mapped[list["OrganizationMembership"]] = relationship(back_populates="org")


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
    email: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    active_org_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    memberships: Mapped[list["OrganizationMembership"]] = relationship(back_populates="user")

    @property
    def label(self) -> str:
        for value in (self.display_name, self.name, self.email):
            if value and value.strip():
                return value.strip()
        return "Unnamed"


class OrganizationMembership(Base, TimestampMixin):
    __tablename__ = "organization_memberships"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", "role", name="uq_org_membership_role"),
        Index("idx_org_memberships_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
    org_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[OrgRole] = mapped_column(_enum_column(OrgRole, "org_role"), nullable=False)

    org: Mapped[Organization] = relationship(back_populates="memberships")
    user: Mapped[User] = relationship(back_populates="memberships")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_org_id", "org_id"),
        Index("idx_bookings_start_at", "start_at"),
        CheckConstraint("duration_mins BETWEEN 5 AND 600", name="ck_booking_duration"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
    org_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    subject: Mapped[str] = mapped_column(String, nullable=False)
    newsroom_name: Mapped[str] = mapped_column(String, nullable=False)
    program_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    talking_points: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    appearance_scope: Mapped[AppearanceScope] = mapped_column(
        _enum_column(AppearanceScope, "appearance_scope"),
        nullable=False,
        default=AppearanceScope.UNIFIED,
    )
    access_provisioning: Mapped[AccessProvisioning] = mapped_column(
        _enum_column(AccessProvisioning, "access_provisioning"),
        nullable=False,
        default=AccessProvisioning.SHARED,
    )
    appearance_type: Mapped[Optional[AppearanceType]] = mapped_column(
        _enum_column(AppearanceType, "appearance_type"), nullable=True
    )

    location_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    location_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dial_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    host_user_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    host_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Legacy single-expert columns, mirrored from the first guest on save.
    expert_user_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    expert_name: Mapped[str] = mapped_column(String, nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    guests: Mapped[list["BookingGuest"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingGuest.order",
    )


class BookingGuest(Base, TimestampMixin):
    __tablename__ = "booking_guests"
    __table_args__ = (
        UniqueConstraint("booking_id", "user_id", name="uq_booking_guest_user"),
        Index("idx_booking_guests_booking_id", "booking_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(
        String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    kind: Mapped[ParticipantKind] = mapped_column(
        _enum_column(ParticipantKind, "participant_kind"), nullable=False
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    appearance_type: Mapped[AppearanceType] = mapped_column(
        _enum_column(AppearanceType, "guest_appearance_type"), nullable=False
    )
    join_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    venue_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dial_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    booking: Mapped[Booking] = relationship(back_populates="guests")
