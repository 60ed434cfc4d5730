"""
Tests for the bookings API client against a mocked transport.
"""

import json

import httpx
import pytest
from factories import make_draft, make_guest

from newsroom.services.booking_client import BookingApiClient, BookingApiSettings
from newsroom.services.drafts import (
    BookingDraftController,
    BookingNotFoundError,
    BookingStoreError,
    BookingValidationError,
    SubmitStatus,
    build_save_payload,
)

SETTINGS = BookingApiSettings(base_url="https://api.example", access_token="token-123")

RECORD = {
    "id": "booking-1",
    "orgId": "org-1",
    "subject": "Budget reaction",
    "newsroomName": "Evening News",
    "startAt": "2026-03-02T18:30:00Z",
    "durationMins": 30,
    "appearanceScope": "UNIFIED",
    "accessProvisioning": "SHARED",
    "appearanceType": "ONLINE",
    "locationUrl": "https://meet.example/abc",
    "guests": [
        {"id": "g-1", "userId": "u1", "name": "Ada", "kind": "EXPERT", "order": 0,
         "appearanceType": "ONLINE"},
    ],
}


def _client(handler):
    return BookingApiClient(SETTINGS, transport=httpx.MockTransport(handler))


class TestBookingApiClient:
    def setup_method(self):
        self.requests = []

    @pytest.mark.asyncio
    async def test_fetch_sends_bearer_token(self):
        def handler(request):
            self.requests.append(request)
            access = [{"kind": "ONLINE", "value": "https://meet.example/abc",
                       "usedFallback": True, "guestId": "g-1", "order": 0}]
            return httpx.Response(200, json={"booking": RECORD, "access": access, "canEdit": True})

        response = await _client(handler).fetch("booking-1")

        request = self.requests[0]
        assert request.url == "https://api.example/api/bookings/booking-1"
        assert request.headers["Authorization"] == "Bearer token-123"
        assert response.can_edit is True
        assert response.booking.guests[0].user_id == "u1"
        assert response.access[0].used_fallback is True

    @pytest.mark.asyncio
    async def test_save_patches_camel_case_payload(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, json={"booking": RECORD})

        payload = build_save_payload(make_draft(guests=[make_guest(id="g-1", user_id="u1")]))
        record = await _client(handler).save("booking-1", payload)

        request = self.requests[0]
        body = json.loads(request.content)
        assert request.method == "PATCH"
        assert body["newsroomName"] == "Evening News"
        assert body["guests"][0]["userId"] == "u1"
        assert body["deletedGuestIds"] is None
        assert record.id == "booking-1"

    @pytest.mark.asyncio
    async def test_not_found(self):
        client = _client(lambda request: httpx.Response(404, json={"detail": "Booking not found"}))

        with pytest.raises(BookingNotFoundError):
            await client.fetch("booking-404")

    @pytest.mark.asyncio
    async def test_validation_error_carries_report(self):
        detail = {
            "message": "Fix 1 item: Guest #1 (join URL).",
            "report": {"bookingErrors": {}, "guestErrors": [{"joinUrl": "Join URL is required."}],
                       "summary": "Fix 1 item: Guest #1 (join URL).", "ok": False},
        }
        client = _client(lambda request: httpx.Response(400, json={"detail": detail}))

        with pytest.raises(BookingValidationError) as excinfo:
            await client.save("booking-1", build_save_payload(make_draft()))

        assert str(excinfo.value) == "Fix 1 item: Guest #1 (join URL)."
        assert excinfo.value.report.guest_errors == [{"joinUrl": "Join URL is required."}]

    @pytest.mark.asyncio
    async def test_server_error_keeps_status(self):
        client = _client(lambda request: httpx.Response(503, text="upstream down"))

        with pytest.raises(BookingStoreError) as excinfo:
            await client.fetch("booking-1")

        assert excinfo.value.status_code == 503
        assert str(excinfo.value) == "upstream down"

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BookingStoreError, match="Could not reach the bookings API"):
            await _client(handler).fetch("booking-1")

    @pytest.mark.asyncio
    async def test_host_search_passes_cursor(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(
                200, json={"items": [{"id": "h2", "name": "Hal"}], "count": 1, "nextCursor": None}
            )

        response = await _client(handler).search_hosts("ha", take=1, cursor="h1")

        params = self.requests[0].url.params
        assert params["q"] == "ha"
        assert params["take"] == "1"
        assert params["cursor"] == "h1"
        assert response.items[0].name == "Hal"
        assert response.next_cursor is None

    @pytest.mark.asyncio
    async def test_directory_search(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(
                200, json={"items": [{"id": "u1", "name": "Ada", "kind": "EXPERT"}], "count": 1}
            )

        response = await _client(handler).search_directory("ad", mode="expert")

        assert self.requests[0].url.params["mode"] == "expert"
        assert response.items[0].id == "u1"

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_wrapped(self):
        client = _client(lambda request: httpx.Response(200, text="not json"))

        with pytest.raises(BookingStoreError, match="Unexpected response") as excinfo:
            await client.fetch("booking-1")

        assert excinfo.value.status_code == 502


class TestControllerOverHttp:
    @pytest.mark.asyncio
    async def test_failed_remote_save_is_retryable(self):
        responses = [
            httpx.Response(500, json={"detail": "Internal server error"}),
            httpx.Response(200, json={"booking": RECORD}),
        ]
        client = _client(lambda request: responses.pop(0))
        controller = BookingDraftController(client, phone_enabled=True)
        controller.load(RECORD)

        first = await controller.submit()
        second = await controller.submit()

        assert first.status is SubmitStatus.failed
        assert first.message == "Internal server error"
        assert second.ok
        assert controller.save_error is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"ok": True}),
            httpx.Response(200, text="<html>gateway</html>"),
            httpx.Response(200, json={"booking": {"subject": "no id"}}),
        ],
    )
    async def test_malformed_save_response_becomes_failed_result(self, response):
        controller = BookingDraftController(_client(lambda request: response), phone_enabled=True)
        controller.load(RECORD)

        result = await controller.submit()

        assert result.status is SubmitStatus.failed
        assert result.message == "Unexpected response from the bookings API"
        assert controller.draft.subject == "Budget reaction"
