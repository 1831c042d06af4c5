from __future__ import annotations

import hashlib
import hmac
import logging
import os

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)


def _digest(key: str) -> bytes:
    return hashlib.sha256(key.encode("utf-8")).digest()


def configured_keys() -> list[bytes]:
    """Digests of the accepted keys.

    API_KEY holds one key, or several separated by commas while a key is
    being rotated. It is read per request so a rotation needs no restart.
    """
    raw = os.getenv("API_KEY", "")
    return [_digest(k.strip()) for k in raw.split(",") if k.strip()]


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization[7:].strip() or None


def key_matches(presented: str, accepted: list[bytes]) -> bool:
    # digests have equal length; every key is compared so timing is the same for each
    got = _digest(presented)
    ok = False
    for expected in accepted:
        ok = hmac.compare_digest(got, expected) or ok
    return ok


def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-Api-Key"),
    authorization: str | None = Header(default=None),
) -> None:
    """Accept the key from X-Api-Key or from an `Authorization: Bearer` header."""
    accepted = configured_keys()
    if not accepted:
        # Fail closed: with no key configured every request is refused.
        logger.error("API_KEY is not set; rejecting request")
        raise HTTPException(status_code=500, detail="Server misconfigured: API_KEY not set")

    presented = x_api_key or parse_bearer(authorization)
    if presented is None:
        logger.warning("rejected request without an API key")
        raise HTTPException(status_code=401, detail="Missing API key")
    if not key_matches(presented, accepted):
        logger.warning("rejected request with an unknown API key")
        raise HTTPException(status_code=401, detail="Unauthorized")
