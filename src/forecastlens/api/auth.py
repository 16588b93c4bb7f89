"""Trigger authentication: shared-secret bearer token or QStash request signature."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import Iterable

from fastapi import HTTPException, Request
from jose import JWTError, jwt

from forecastlens.api.deps import app_state

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SIGNATURE_ISSUER = "Upstash"
SIGNATURE_HEADER = "upstash-signature"


def body_digest(body: bytes) -> str:
    """Unpadded base64url SHA-256 of a request body, as carried in the ``body`` claim."""
    return base64.urlsafe_b64encode(hashlib.sha256(body).digest()).decode().rstrip("=")


def verify_bearer(authorization: str | None, secret: str) -> bool:
    """Constant-time check of an ``Authorization: Bearer <secret>`` header."""
    if not secret or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode(), secret.encode())


def verify_signature(token: str | None, body: bytes, signing_keys: Iterable[str]) -> bool:
    """Return True if ``token`` is a valid HS256 signature JWT for ``body``.

    Keys are tried in order (current, then next) so key rotation never drops
    a scheduled trigger. Expiry and not-before claims are enforced.
    """
    if not token:
        return False
    expected = body_digest(body)
    for key in signing_keys:
        if not key:
            continue
        try:
            claims = jwt.decode(
                token, key, algorithms=[ALGORITHM], issuer=SIGNATURE_ISSUER,
                options={"verify_aud": False},
            )
        except JWTError:
            continue
        if hmac.compare_digest(str(claims.get("body", "")).rstrip("="), expected):
            return True
        logger.warning("Signature valid but body hash mismatch")
    return False


async def require_trigger_auth(request: Request) -> None:
    """FastAPI dependency guarding the scheduled trigger endpoints."""
    config = app_state.config
    if config is None:
        raise HTTPException(status_code=503, detail="Service not initialised")

    if verify_bearer(request.headers.get("authorization"), config.cron_secret):
        return

    keys = (config.qstash_current_signing_key, config.qstash_next_signing_key)
    if any(keys):
        body = await request.body()
        if verify_signature(request.headers.get(SIGNATURE_HEADER), body, keys):
            return

    logger.warning("Rejected unauthenticated trigger request to %s", request.url.path)
    raise HTTPException(status_code=401, detail="Not authenticated")
