"""
Tests for token verification, viewer resolution and booking access rules.
"""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from factories import make_record

from newsroom.auth import AuthError, AuthSettings, TokenVerifier, Viewer, resolve_viewer
from newsroom.models import OrgRole
from newsroom.services.memberships import (
    can_edit_booking,
    can_read_booking,
    load_roles,
    staff_org_id,
)

SECRET = "test-shared-secret-with-enough-bytes!!"


def _token(secret=SECRET, **claims):
    payload = {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 300}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestTokenVerifier:
    def setup_method(self):
        self.verifier = TokenVerifier(AuthSettings(auth_jwt_secret=SECRET))

    @pytest.mark.asyncio
    async def test_shared_secret_token(self):
        claims = await self.verifier.verify(_token(email="ada@example.com"))

        assert claims["sub"] == "user-1"
        assert claims["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_expired_token(self):
        with pytest.raises(AuthError, match="expired"):
            await self.verifier.verify(_token(exp=int(time.time()) - 60))

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        with pytest.raises(AuthError, match="validation failed"):
            await self.verifier.verify(_token(secret="another-secret-with-enough-bytes!!!"))

    @pytest.mark.asyncio
    async def test_wrong_audience(self):
        with pytest.raises(AuthError, match="validation failed"):
            await self.verifier.verify(_token(aud="someone-else"))

    @pytest.mark.asyncio
    async def test_malformed_token(self):
        with pytest.raises(AuthError, match="malformed"):
            await self.verifier.verify("not-a-jwt")

    @pytest.mark.asyncio
    async def test_nothing_configured(self):
        verifier = TokenVerifier(AuthSettings())

        with pytest.raises(AuthError, match="not configured"):
            await verifier.verify(_token())


class TestResolveViewer:
    @pytest.mark.asyncio
    async def test_known_user_gets_roles(self):
        user = SimpleNamespace(
            id="user-1", email="ada@example.com", label="Ada", active_org_id="org-1"
        )
        db = MagicMock()
        db.get = AsyncMock(return_value=user)
        roles_result = MagicMock()
        roles_result.all.return_value = [("org-1", OrgRole.PRODUCER), ("org-1", OrgRole.HOST)]
        db.execute = AsyncMock(return_value=roles_result)

        viewer = await resolve_viewer(db, {"sub": "user-1"})

        assert viewer.is_signed_in
        assert viewer.name == "Ada"
        assert viewer.roles_in("org-1") == frozenset({OrgRole.PRODUCER, OrgRole.HOST})
        assert viewer.roles_in("org-2") == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_user_is_signed_in_without_roles(self):
        db = MagicMock()
        db.get = AsyncMock(return_value=None)
        lookup = MagicMock()
        lookup.scalar_one_or_none.return_value = None
        db.execute = AsyncMock(return_value=lookup)

        viewer = await resolve_viewer(db, {"sub": "ext-9", "email": "new@example.com"})

        assert viewer.is_signed_in
        assert viewer.user_id == "ext-9"
        assert dict(viewer.roles) == {}

    @pytest.mark.asyncio
    async def test_missing_subject(self):
        with pytest.raises(AuthError):
            await resolve_viewer(MagicMock(), {"email": "x@example.com"})

    @pytest.mark.asyncio
    async def test_load_roles_groups_by_org(self):
        result = MagicMock()
        result.all.return_value = [
            ("org-1", OrgRole.OWNER),
            ("org-2", OrgRole.EXPERT),
            ("org-1", OrgRole.HOST),
        ]
        db = MagicMock()
        db.execute = AsyncMock(return_value=result)

        roles = await load_roles(db, "user-1")

        assert roles == {
            "org-1": frozenset({OrgRole.OWNER, OrgRole.HOST}),
            "org-2": frozenset({OrgRole.EXPERT}),
        }


class TestBookingAccessRules:
    def setup_method(self):
        self.record = make_record(
            expert_user_id="user-e",
            guests=[{"id": "g-1", "user_id": "user-g", "name": "Gus"}],
        )

    def _viewer(self, user_id, roles=None):
        return Viewer(is_signed_in=True, user_id=user_id, roles=roles or {})

    @pytest.mark.parametrize("role", [OrgRole.OWNER, OrgRole.ADMIN, OrgRole.PRODUCER])
    def test_editors(self, role):
        viewer = self._viewer("user-s", {"org-1": frozenset({role})})

        assert can_edit_booking(viewer, "org-1")
        assert can_read_booking(viewer, self.record)

    def test_host_reads_but_does_not_edit(self):
        viewer = self._viewer("user-h", {"org-1": frozenset({OrgRole.HOST})})

        assert can_read_booking(viewer, self.record)
        assert not can_edit_booking(viewer, "org-1")

    def test_roles_in_another_org_do_not_count(self):
        viewer = self._viewer("user-s", {"org-2": frozenset({OrgRole.OWNER})})

        assert not can_edit_booking(viewer, "org-1")
        assert not can_read_booking(viewer, self.record)

    def test_expert_and_guest_can_read(self):
        assert can_read_booking(self._viewer("user-e"), self.record)
        assert can_read_booking(self._viewer("user-g"), self.record)

    def test_anonymous_cannot_read(self):
        assert not can_read_booking(Viewer.anonymous(), self.record)
        assert not can_edit_booking(Viewer.anonymous(), "org-1")

    def test_staff_org_prefers_active_org(self):
        viewer = Viewer(
            is_signed_in=True,
            active_org_id="org-9",
            roles={"org-1": frozenset({OrgRole.PRODUCER})},
        )

        assert staff_org_id(viewer) == "org-9"

    def test_staff_org_skips_expert_only_orgs(self):
        viewer = self._viewer(
            "user-s",
            {"org-1": frozenset({OrgRole.EXPERT}), "org-2": frozenset({OrgRole.HOST})},
        )

        assert staff_org_id(viewer) == "org-2"
