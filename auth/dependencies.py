"""
auth/dependencies.py -- FastAPI Depends() helpers for the users router.

The collection, its namespace, and the secret store are resolved once in the
application lifespan (api/main.py) and kept on app.state. The getters below
read them back and answer 503 if a request somehow arrives before startup
finished.

require_resource_owner() is the resource guard. It is attached to every
route under /{user} and lets a request through only when the bearer token
verifies for the namespace and its subject equals the {user} path segment.

Layer rule: auth/dependencies.py may import from fastapi (for Depends /
HTTPException / Request) because it is part of the FastAPI dependency
injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.collection import UserCollection
from auth.errors import UnauthorizedError
from auth.secrets_store import SecretStore
from auth.service import verify_owner


def _state(request: Request, attr: str):
    value = getattr(request.app.state, attr, None)
    if value is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "not_ready", "message": "User collection is not initialized yet."},
        )
    return value


def get_collection(request: Request) -> UserCollection:
    return _state(request, "collection")


def get_namespace(request: Request) -> str:
    return _state(request, "namespace")


def get_secret_store(request: Request) -> SecretStore:
    return _state(request, "secret_store")


def bearer_token(request: Request) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header.

    Raises UnauthorizedError if the header is absent or uses another scheme.
    """
    header = request.headers.get("Authorization", "")
    if not header:
        raise UnauthorizedError("No authorization token was found.")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Format is Authorization: Bearer [token]")
    return token.strip()


def require_resource_owner(request: Request, user: str) -> dict:
    """Guard for /{user}/... routes. Returns the verified token claims.

    The claims are also stored on request.state.claims for handlers that do
    not declare the dependency themselves.

    Use as a router-level dependency:
        APIRouter(prefix="/{user}", dependencies=[Depends(require_resource_owner)])
    """
    namespace = get_namespace(request)
    secret_store = get_secret_store(request)
    claims = verify_owner(bearer_token(request), user, namespace, secret_store)
    request.state.claims = claims
    return claims
