"""Field-level and shape validation for booking drafts.

Everything here is derived from draft state alone so the editor can run it
on every change and the persistence layer can run it again, identically,
before writing. Nothing raises: violations come back as data.
"""

from __future__ import annotations

from typing import Any, Optional

from ..appearance import AccessMode, AppearanceType, access_mode, clean_text
from ..schemas import BookingDraft, GuestBase, ValidationReport
from ..utils import coerce_whole_number, parse_instant

MIN_DURATION_MINS = 5
MAX_DURATION_MINS = 600

VENUE_REQUIRED = "Enter a venue name or address."

# Per appearance type: the (attribute, camelCase key) pairs that satisfy it,
# any one being enough, and the message attached to each key.
_GUEST_REQUIREMENTS: dict[AppearanceType, tuple[tuple[tuple[str, str], ...], str]] = {
    AppearanceType.ONLINE: ((("join_url", "joinUrl"),), "Join URL is required."),
    AppearanceType.IN_PERSON: (
        (("venue_name", "venueName"), ("venue_address", "venueAddress")),
        VENUE_REQUIRED,
    ),
    AppearanceType.PHONE: ((("dial_info", "dialInfo"),), "Dial-in details are required."),
}

_FIELD_LABELS = {
    "joinUrl": "join URL",
    "venueName": "venue name or address",
    "venueAddress": "venue name or address",
    "dialInfo": "dial-in details",
}


def _guest_violations(mode: AccessMode, guest: GuestBase) -> dict[str, str]:
    if not mode.per_guest_provisioned:
        return {}

    # Under PER_GUEST scope each guest's own type decides; under UNIFIED the
    # booking's type does. Provisioning may be PER_GUEST in either case.
    kind = mode.appearance_for(guest.appearance_type)
    fields, message = _GUEST_REQUIREMENTS[kind]
    if any(clean_text(getattr(guest, attr)) for attr, _ in fields):
        return {}
    return {key: message for _, key in fields}


def _booking_violations(mode: AccessMode, booking: BookingDraft) -> dict[str, str]:
    if not mode.unified_in_person:
        return {}
    if clean_text(booking.location_name) or clean_text(booking.location_address):
        return {}
    return {"locationName": VENUE_REQUIRED, "locationAddress": VENUE_REQUIRED}


def summarize(
    booking_errors: dict[str, str], guest_errors: list[dict[str, str]]
) -> Optional[str]:
    """Build the one-line summary, booking section first, then guests in order."""

    sections: list[str] = []
    if booking_errors:
        sections.append("Booking defaults (venue name or address)")
    for index, errors in enumerate(guest_errors, start=1):
        if not errors:
            continue
        first_field = next(iter(errors))
        label = _FIELD_LABELS.get(first_field, first_field)
        sections.append(f"Guest #{index} ({label})")

    if not sections:
        return None
    noun = "item" if len(sections) == 1 else "items"
    return f"Fix {len(sections)} {noun}: " + "; ".join(sections) + "."


def validate(draft: BookingDraft) -> ValidationReport:
    """Compute every connection-detail violation for ``draft``."""

    mode = access_mode(draft)
    booking_errors = _booking_violations(mode, draft)
    guest_errors = [_guest_violations(mode, guest) for guest in draft.guests]
    return ValidationReport(
        booking_errors=booking_errors,
        guest_errors=guest_errors,
        summary=summarize(booking_errors, guest_errors),
    )


def _text_issue(value: Any, label: str, max_length: int) -> Optional[str]:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        return f"{label} is required"
    if len(text) < 2:
        return f"Please enter a longer {label.lower()}"
    if len(text) > max_length:
        return f"{label} is too long"
    return None


def validate_shape(draft: BookingDraft) -> Optional[str]:
    """Check primitive booking fields; return the first problem or ``None``."""

    issue = _text_issue(draft.subject, "Subject", 300)
    if issue:
        return issue
    issue = _text_issue(draft.newsroom_name, "Newsroom name", 200)
    if issue:
        return issue

    if len((draft.program_name or "").strip()) > 120:
        return "Program name is too long"
    if len((draft.talking_points or "").strip()) > 2000:
        return "Talking points are too long"

    if parse_instant(draft.start_at) is None:
        return "Start date/time must be a valid timestamp"

    duration = coerce_whole_number(draft.duration_mins)
    if duration is None:
        return "Duration must be a whole number of minutes"
    if duration < MIN_DURATION_MINS:
        return f"Duration must be at least {MIN_DURATION_MINS} minutes"
    if duration > MAX_DURATION_MINS:
        return f"Duration must be at most {MAX_DURATION_MINS} minutes"
    return None
