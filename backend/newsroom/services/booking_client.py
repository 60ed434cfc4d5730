"""HTTP client for the bookings API.

Implements the ``BookingStore`` protocol so a ``BookingDraftController`` can
be driven against a remote backend, and exposes the person and host
lookups the editor needs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..schemas import (
    BookingReadResponse,
    BookingRecord,
    BookingSavePayload,
    DirectorySearchResponse,
    HostSearchResponse,
    ValidationReport,
)
from .drafts import BookingNotFoundError, BookingStoreError, BookingValidationError

logger = logging.getLogger(__name__)

UNEXPECTED_RESPONSE = "Unexpected response from the bookings API"


@dataclass(frozen=True, slots=True)
class BookingApiSettings:
    """Configuration required to talk to the bookings API."""

    base_url: str
    access_token: Optional[str] = None
    request_timeout_seconds: float = 10.0


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", None

    detail = body.get("detail") if isinstance(body, dict) else body
    if isinstance(detail, dict):
        return str(detail.get("message") or detail), detail
    if isinstance(detail, str):
        return detail, None
    return f"HTTP {response.status_code}", detail


def _parse(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Bookings API returned an invalid %s: %s", model.__name__, exc)
        raise BookingStoreError(UNEXPECTED_RESPONSE, status_code=502) from exc


class BookingApiClient:
    """Async client for ``/api/bookings``, ``/api/directory`` and ``/api/hosts``."""

    def __init__(
        self,
        settings: BookingApiSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._headers = {"Content-Type": "application/json"}
        if settings.access_token:
            self._headers["Authorization"] = f"Bearer {settings.access_token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout_seconds,
            headers=self._headers,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Bookings API %s %s failed: %s", method, path, exc)
            raise BookingStoreError(f"Could not reach the bookings API: {exc}") from exc

        if response.status_code >= 400:
            message, detail = _error_message(response)
            logger.warning(
                "Bookings API %s %s returned %d: %s", method, path, response.status_code, message
            )
            if response.status_code == 404 and path.startswith("/api/bookings/"):
                raise BookingNotFoundError(path.rsplit("/", 1)[-1])
            if response.status_code == 400:
                report = None
                if isinstance(detail, dict) and isinstance(detail.get("report"), dict):
                    report = ValidationReport.model_validate(detail["report"])
                raise BookingValidationError(message, report=report)
            raise BookingStoreError(message, status_code=response.status_code, detail=detail)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Bookings API %s %s returned a non-JSON body", method, path)
            raise BookingStoreError(UNEXPECTED_RESPONSE, status_code=502) from exc

    async def fetch(self, booking_id: str) -> BookingReadResponse:
        data = await self._request("GET", f"/api/bookings/{booking_id}")
        return _parse(BookingReadResponse, data)

    async def save(self, booking_id: str, payload: BookingSavePayload) -> BookingRecord:
        data = await self._request(
            "PATCH",
            f"/api/bookings/{booking_id}",
            json=payload.model_dump(mode="json", by_alias=True),
        )
        if not isinstance(data, dict) or "booking" not in data:
            logger.warning("Bookings API save for %s returned no booking", booking_id)
            raise BookingStoreError(UNEXPECTED_RESPONSE, status_code=502)
        return _parse(BookingRecord, data["booking"])

    async def search_directory(
        self, query: str = "", *, mode: str = "all", take: int = 20
    ) -> DirectorySearchResponse:
        data = await self._request(
            "GET", "/api/directory/search", params={"q": query, "mode": mode, "take": take}
        )
        return _parse(DirectorySearchResponse, data)

    async def search_hosts(
        self, query: str = "", *, take: int = 20, cursor: Optional[str] = None
    ) -> HostSearchResponse:
        params: dict[str, Any] = {"q": query, "take": take}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("GET", "/api/hosts/search", params=params)
        return _parse(HostSearchResponse, data)
