"""
Tests for guest roster operations.
"""

import random

from factories import make_draft, make_guest, person

from newsroom.appearance import AppearanceType
from newsroom.models import ParticipantKind
from newsroom.services import roster


def _orders(draft):
    return [guest.order for guest in draft.guests]


class TestAddGuest:
    def setup_method(self):
        self.draft = make_draft()

    def test_appends_online_guest_with_empty_details(self):
        added = roster.add_guest(self.draft, person("user-ada", "Ada", ParticipantKind.REPORTER))

        assert added is True
        guest = self.draft.guests[0]
        assert guest.id is None
        assert guest.user_id == "user-ada"
        assert guest.kind is ParticipantKind.REPORTER
        assert guest.order == 0
        assert guest.appearance_type is AppearanceType.ONLINE
        assert guest.join_url is None
        assert guest.venue_name is None
        assert guest.venue_address is None
        assert guest.dial_info is None

    def test_same_person_twice_is_ignored(self):
        roster.add_guest(self.draft, person("user-ada", "Ada"))
        added = roster.add_guest(self.draft, person("user-ada", "Ada (again)"))

        assert added is False
        assert len(self.draft.guests) == 1
        assert self.draft.guests[0].name == "Ada"


class TestRemoveGuest:
    def setup_method(self):
        self.draft = make_draft(
            guests=[
                make_guest(id="g-1", user_id="u1", order=0),
                make_guest(id="g-2", user_id="u2", order=1),
                make_guest(id=None, user_id="u3", order=2),
            ]
        )

    def test_removal_reindexes_and_tombstones(self):
        removed = roster.remove_guest(self.draft, 0)

        assert removed.id == "g-1"
        assert [guest.user_id for guest in self.draft.guests] == ["u2", "u3"]
        assert _orders(self.draft) == [0, 1]
        assert self.draft.deleted_guest_ids == ["g-1"]

    def test_unsaved_guest_leaves_no_tombstone(self):
        roster.remove_guest(self.draft, 2)

        assert self.draft.deleted_guest_ids == []

    def test_tombstone_recorded_once(self):
        """Removing the same guest twice only records it once."""
        roster.remove_guest(self.draft, 2)
        roster.remove_guest(self.draft, 1)
        second = roster.remove_guest(self.draft, 1)

        assert second is None
        assert self.draft.deleted_guest_ids == ["g-2"]

    def test_out_of_range_is_noop(self):
        assert roster.remove_guest(self.draft, 7) is None
        assert roster.remove_guest(self.draft, -1) is None
        assert len(self.draft.guests) == 3


class TestOrderInvariant:
    def test_orders_stay_dense_through_random_edits(self):
        draft = make_draft()
        rng = random.Random(7)

        for step in range(60):
            if draft.guests and rng.random() < 0.4:
                roster.remove_guest(draft, rng.randrange(len(draft.guests)))
            else:
                roster.add_guest(draft, person(f"user-{rng.randrange(12)}", f"Person {step}"))
            assert _orders(draft) == list(range(len(draft.guests)))


class TestMoveGuest:
    def test_move_shifts_others(self):
        draft = make_draft(
            guests=[make_guest(user_id=f"u{i}", order=i) for i in range(3)]
        )

        assert roster.move_guest(draft, 2, 0) is True

        assert [guest.user_id for guest in draft.guests] == ["u2", "u0", "u1"]
        assert _orders(draft) == [0, 1, 2]

    def test_move_out_of_range(self):
        draft = make_draft(guests=[make_guest()])

        assert roster.move_guest(draft, 0, 3) is False


class TestPatchGuest:
    def setup_method(self):
        self.draft = make_draft(
            guests=[make_guest(id="g-1", join_url="https://meet.example/ada")]
        )

    def test_type_switch_resets_connection_fields(self):
        updated = roster.patch_guest(self.draft, 0, {"appearanceType": "IN_PERSON"})

        assert updated.appearance_type is AppearanceType.IN_PERSON
        assert updated.join_url is None
        assert self.draft.guests[0].join_url is None

    def test_type_switch_keeps_fields_from_the_same_patch(self):
        updated = roster.patch_guest(
            self.draft,
            0,
            {"appearance_type": AppearanceType.IN_PERSON, "venue_name": "Studio 4"},
        )

        assert updated.venue_name == "Studio 4"
        assert updated.join_url is None

    def test_same_type_patch_keeps_other_fields(self):
        self.draft.guests[0].dial_info = "+1 555 0100"

        updated = roster.patch_guest(self.draft, 0, {"joinUrl": "https://new"})

        assert updated.join_url == "https://new"
        assert updated.dial_info == "+1 555 0100"

    def test_identity_and_order_are_protected(self):
        updated = roster.patch_guest(self.draft, 0, {"id": "other", "order": 5, "name": "Ada L."})

        assert updated.id == "g-1"
        assert updated.order == 0
        assert updated.name == "Ada L."

    def test_invalid_patch_is_rejected(self):
        assert roster.patch_guest(self.draft, 0, {"appearanceType": "CARRIER_PIGEON"}) is None
        assert self.draft.guests[0].join_url == "https://meet.example/ada"

    def test_out_of_range_patch(self):
        assert roster.patch_guest(self.draft, 3, {"name": "x"}) is None
