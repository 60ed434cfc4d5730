"""Bearer-token verification and viewer resolution for the FastAPI backend."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx
import jwt
from dotenv import find_dotenv, load_dotenv
from fastapi import Depends, Header, HTTPException, status
from jwt import algorithms
from pydantic_settings import BaseSettings
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .database import get_session
from .models import OrgRole
from .services.memberships import load_roles

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)


logger = logging.getLogger(__name__)


class AuthSettings(BaseSettings):
    """Configuration required to validate access tokens."""

    auth_jwt_secret: Optional[str] = None
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_audience: str = "authenticated"
    auth_jwt_issuer: Optional[str] = None
    auth_jwks_url: Optional[str] = None
    auth_jwks_ttl_seconds: int = 3600
    auth_http_timeout_seconds: float = 5.0


class AuthError(RuntimeError):
    """Raised when an access token is missing, malformed or cannot be validated."""


@lru_cache
def get_auth_settings() -> AuthSettings:
    return AuthSettings()


class _JWKSCache:
    """Caches JWKS responses to avoid fetching keys on every request."""

    def __init__(self, jwks_url: str, ttl_seconds: int, timeout: float) -> None:
        self._jwks_url = jwks_url
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self._expires_at: float = 0.0
        self._keys: dict[str, Mapping[str, Any]] = {}

    async def _refresh(self) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._jwks_url)
            response.raise_for_status()
            payload = response.json()

        self._keys = {
            key["kid"]: key
            for key in payload.get("keys", [])
            if isinstance(key, Mapping) and "kid" in key
        }
        self._expires_at = time.monotonic() + self._ttl_seconds

    async def get_key(self, kid: str) -> Mapping[str, Any]:
        async with self._lock:
            if time.monotonic() >= self._expires_at:
                await self._refresh()

            key = self._keys.get(kid)
            if key is None:
                # Keys may have rotated since the last refresh.
                await self._refresh()
                key = self._keys.get(kid)
                if key is None:
                    raise KeyError(kid)
            return key


class TokenVerifier:
    """Validates bearer tokens: RS256 via JWKS when a ``kid`` is present, else a shared secret."""

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings
        self._jwks_cache: Optional[_JWKSCache] = None
        if settings.auth_jwks_url:
            self._jwks_cache = _JWKSCache(
                jwks_url=settings.auth_jwks_url,
                ttl_seconds=settings.auth_jwks_ttl_seconds,
                timeout=settings.auth_http_timeout_seconds,
            )

    def _decode(self, token: str, key: Any, algorithm: str) -> Mapping[str, Any]:
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                audience=self._settings.auth_jwt_audience,
                issuer=self._settings.auth_jwt_issuer,
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Access token has expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthError("Access token validation failed") from exc

    async def _decode_with_jwks(self, token: str, kid: str) -> Mapping[str, Any]:
        if self._jwks_cache is None:
            raise AuthError("Signing keys are not configured")
        try:
            key_data = await self._jwks_cache.get_key(kid)
        except httpx.HTTPError as exc:
            raise AuthError("Unable to download signing keys") from exc
        except KeyError as exc:
            raise AuthError("Signing key not found; try signing in again") from exc

        rsa_algorithm = algorithms.get_default_algorithms().get("RS256")
        if rsa_algorithm is None:  # pragma: no cover - PyJWT built without crypto
            raise AuthError("RSA algorithm support is unavailable")
        try:
            rsa_key = rsa_algorithm.from_jwk(json.dumps(dict(key_data)))
        except (TypeError, ValueError) as exc:
            raise AuthError("Signing key is invalid") from exc
        return self._decode(token, rsa_key, "RS256")

    def _decode_with_shared_secret(
        self, token: str, algorithm_from_header: Optional[str]
    ) -> Mapping[str, Any]:
        secret = self._settings.auth_jwt_secret
        if not secret:
            raise AuthError("Shared secret verification is not configured")

        algorithm = self._settings.auth_jwt_algorithm or "HS256"
        if algorithm_from_header and algorithm_from_header != algorithm:
            raise AuthError("Access token algorithm does not match the configured algorithm")
        return self._decode(token, secret, algorithm)

    async def verify(self, token: str) -> Mapping[str, Any]:
        """Return the verified claims of ``token``."""

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise AuthError("Access token is malformed") from exc

        kid = header.get("kid")
        last_error: Optional[AuthError] = None

        if kid and self._jwks_cache is not None:
            try:
                return await self._decode_with_jwks(token, kid)
            except AuthError as exc:
                last_error = exc

        if self._settings.auth_jwt_secret:
            try:
                return self._decode_with_shared_secret(token, header.get("alg"))
            except AuthError as exc:
                last_error = exc

        if last_error is not None:
            raise last_error
        raise AuthError("Access token verification is not configured")


@lru_cache
def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(get_auth_settings())


@dataclass(frozen=True)
class Viewer:
    """The caller of a request, resolved once by ``get_viewer``."""

    is_signed_in: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    active_org_id: Optional[str] = None
    roles: Mapping[str, frozenset[OrgRole]] = field(default_factory=dict)

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls(is_signed_in=False)

    def roles_in(self, org_id: str) -> frozenset[OrgRole]:
        return self.roles.get(org_id, frozenset())


async def resolve_viewer(db: AsyncSession, claims: Mapping[str, Any]) -> Viewer:
    """Match verified ``claims`` to a stored user and load their org roles."""

    subject = claims.get("sub")
    email = claims.get("email")
    if not subject:
        raise AuthError("Access token is missing a subject")

    user = await db.get(models.User, str(subject))
    if user is None and email:
        result = await db.execute(select(models.User).where(models.User.email == email))
        user = result.scalar_one_or_none()

    if user is None:
        logger.debug("No stored user for subject %s; viewer has no roles", subject)
        return Viewer(is_signed_in=True, user_id=str(subject), email=email)

    roles = await load_roles(db, user.id)
    return Viewer(
        is_signed_in=True,
        user_id=user.id,
        email=user.email or email,
        name=user.label,
        active_org_id=user.active_org_id,
        roles=MappingProxyType(roles),
    )


async def get_viewer(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    verifier: TokenVerifier = Depends(get_token_verifier),
    db: AsyncSession = Depends(get_session),
) -> Viewer:
    """FastAPI dependency returning the current viewer, anonymous without a token."""

    if not authorization:
        return Viewer.anonymous()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        logger.warning("Auth failed: invalid Authorization header (scheme=%s)", scheme.lower())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must be a Bearer token",
        )

    try:
        claims = await verifier.verify(token)
        return await resolve_viewer(db, claims)
    except AuthError as exc:
        logger.warning("Auth failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


async def require_viewer(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    if not viewer.is_signed_in:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is missing",
        )
    return viewer
