from __future__ import annotations

import logging
from typing import Annotated, Any, Optional

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from photofeed.config_secrets import (
    IDENTITY_AUDIENCE,
    IDENTITY_ISSUER,
    IDENTITY_JWKS_ALGORITHM,
    IDENTITY_JWKS_URL,
    IDENTITY_JWT_ALGORITHM,
    IDENTITY_JWT_SECRET,
)
from photofeed.core import cache
from photofeed.models.models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Signing keys fetched from the identity provider, by JWKS URL
_jwks_by_url: dict[str, dict[str, Any]] = {}


class AuthError(HTTPException):
    """Authentication exception with WWW-Authenticate header."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": detail},
            headers={"WWW-Authenticate": "Bearer"},
        )


async def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(jwks_url)
        response.raise_for_status()
        return response.json()


async def get_jwks(jwks_url: str, refresh: bool = False) -> dict[str, Any]:
    """Signing keys of the identity provider, read through the process and Redis caches."""
    if not refresh:
        jwks = _jwks_by_url.get(jwks_url) or await cache.get_cached_jwks(jwks_url)
        if jwks:
            _jwks_by_url[jwks_url] = jwks
            return jwks

    jwks = await _fetch_jwks(jwks_url)
    _jwks_by_url[jwks_url] = jwks
    await cache.cache_jwks(jwks_url, jwks)
    return jwks


def _find_signing_key(jwks: dict[str, Any], kid: Optional[str]) -> Optional[dict[str, Any]]:
    for key in jwks.get("keys", []):
        if kid is None or key.get("kid") == kid:
            return key
    return None


def _decode_options() -> dict[str, Any]:
    return {"verify_aud": bool(IDENTITY_AUDIENCE)}


async def decode_identity_token(token: str) -> dict[str, Any]:
    """
    Verify an identity provider token and return its claims.

    RS256 tokens are checked against the provider JWKS when IDENTITY_JWKS_URL
    is configured; otherwise tokens are HS256 signed with IDENTITY_JWT_SECRET.
    Issuer and audience are only enforced when configured.
    """
    claims_kwargs: dict[str, Any] = {
        "audience": IDENTITY_AUDIENCE or None,
        "issuer": IDENTITY_ISSUER or None,
        "options": _decode_options(),
    }

    try:
        if not IDENTITY_JWKS_URL:
            return jwt.decode(token, IDENTITY_JWT_SECRET, algorithms=[IDENTITY_JWT_ALGORITHM], **claims_kwargs)

        kid = jwt.get_unverified_header(token).get("kid")
        key = _find_signing_key(await get_jwks(IDENTITY_JWKS_URL), kid)
        if key is None:
            # Provider may have rotated its keys
            key = _find_signing_key(await get_jwks(IDENTITY_JWKS_URL, refresh=True), kid)
        if key is None:
            raise AuthError("Unknown signing key")
        return jwt.decode(token, key, algorithms=[IDENTITY_JWKS_ALGORITHM], **claims_kwargs)
    except JWTError as exc:
        raise AuthError() from exc
    except httpx.HTTPError as exc:
        logger.exception("Failed to fetch signing keys from %s", IDENTITY_JWKS_URL)
        raise AuthError("Unable to verify token") from exc


async def _user_from_token(token: str) -> User:
    from photofeed.services.user_service import resolve_user

    payload = await decode_identity_token(token)
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthError("Invalid token subject")

    name = payload.get("name") or payload.get("username")
    return await resolve_user(subject, name if isinstance(name, str) else None)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> User:
    """Resolve the internal user of the bearer token; 401 without a valid token."""
    if credentials is None or not credentials.credentials:
        raise AuthError()
    return await _user_from_token(credentials.credentials)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Optional[User]:
    """Like get_current_user, but anonymous (None) for a missing or invalid token."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await _user_from_token(credentials.credentials)
    except AuthError:
        logger.info("Ignoring invalid bearer token on public endpoint")
        return None
