"""
auth/tokens.py -- JWT encode / decode for collection-scoped bearer tokens.

Security design decisions:
  JWT: python-jose with HS256. Each token is signed with its namespace's
       secret (auth/secrets_store.py) and carries:
         aud      namespace (collection name)
         sub      username
         iat      issue time
         context  {"user": <credentials as submitted>}
         exp      only when expire_seconds > 0
       decode_token() raises UnauthorizedError on any failure -- the API
       layer turns that into a 401.

  The audience check means a token issued for one collection never verifies
  against another, even if both secrets were somehow equal.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.credentials import Credentials
from auth.errors import UnauthorizedError

logger = logging.getLogger("jwtusers.auth")

_ALGORITHM = "HS256"


def issue_token(credentials: Credentials, namespace: str, secret: bytes, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for credentials.username, scoped to namespace."""
    now = datetime.now(timezone.utc)
    payload = {
        "aud": namespace,
        "sub": credentials.username,
        "iat": now,
        "context": {"user": credentials.as_document()},
    }
    if expire_seconds > 0:
        payload["exp"] = now + timedelta(seconds=expire_seconds)
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_token(token: str, namespace: str, secret: bytes) -> dict:
    """Verify signature, audience and expiry. Returns the claims dict.

    Raises UnauthorizedError if the token is malformed, signed with another
    key, addressed to another audience, expired, or has no string subject.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            audience=namespace,
            options={"require_aud": True, "require_sub": True},
        )
    except JWTError as exc:
        logger.debug("Rejected token for %r: %s", namespace, exc)
        raise UnauthorizedError("The provided token is invalid.", detail=str(exc)) from None
    if not isinstance(claims.get("sub"), str):
        raise UnauthorizedError("The provided token has no subject.")
    return claims
