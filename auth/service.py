"""
auth/service.py -- Register, authorize, and ownership checks.

These are the three operations the HTTP layer exposes. Each validates its
input first and raises a JWTUsersError subclass on failure; nothing here
retries. The collection and secret store are injected so the functions stay
framework-free and easy to test.

Collections are pluggable and raise whatever their driver raises. Any error
from insert_one() leaves register() as a StorageError (400) with the same
message; any error from find_one() leaves authorize() as an
AuthenticationError (403) with the same message. The original exception is
chained as __cause__.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.collection import UserCollection
from auth.credentials import validate
from auth.errors import AuthenticationError, PermissionDeniedError, StorageError
from auth.models import InsertResult
from auth.secrets_store import SecretStore
from auth.tokens import decode_token, issue_token

logger = logging.getLogger("jwtusers.auth")


def _message(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


def register(collection: UserCollection, payload: Any) -> InsertResult:
    """Validate payload and insert it into collection.

    StorageError from the collection (e.g. a duplicate username) propagates
    unchanged; any other exception is re-raised as StorageError carrying its
    message, so a driver's duplicate-key text reaches the client verbatim.
    """
    credentials = validate(payload)
    try:
        result = collection.insert_one(credentials.as_document())
    except StorageError:
        raise
    except Exception as exc:
        logger.warning("insert_one on %r failed: %r", collection.name, exc)
        raise StorageError(_message(exc)) from exc
    logger.info("Registered %r in %r", credentials.username, collection.name)
    return result


def authorize(
    collection: UserCollection,
    secret_store: SecretStore,
    payload: Any,
    expire_seconds: int = 0,
) -> str:
    """Validate payload, look the user up by username+password, and issue a token.

    Password verification is the collection's job: it receives the full
    credentials as the query. Raises AuthenticationError if nothing matches
    or if the lookup itself fails.
    """
    credentials = validate(payload)
    try:
        user = collection.find_one(credentials.as_document())
    except Exception as exc:
        logger.warning("find_one on %r failed: %r", collection.name, exc)
        raise AuthenticationError(_message(exc)) from exc
    if user is None:
        logger.info("Authorization failed for %r in %r", credentials.username, collection.name)
        raise AuthenticationError("No user was found for these credentials.")
    secret = secret_store.secret_for(collection.name)
    return issue_token(credentials, collection.name, secret, expire_seconds=expire_seconds)


def verify_owner(token: str, user: str, namespace: str, secret_store: SecretStore) -> dict:
    """Return the token's claims if it is valid for namespace and its subject is user."""
    claims = decode_token(token, namespace, secret_store.secret_for(namespace))
    subject = claims["sub"]
    if subject != user:
        logger.info("Token subject %r denied access to resources of %r", subject, user)
        raise PermissionDeniedError(f"{subject} has no permission for this resource")
    return claims
