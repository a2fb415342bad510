"""
api/routes/v1/users.py -- Registration, token issue, and per-user resources.

Routes (relative to Settings.users_prefix, default /users):
  POST   ""                  -- register credentials in the collection
  POST   /authorize          -- exchange credentials for a bearer token
  *      /authorize          -- any other method: 400, use POST instead
  GET    /{user}             -- who the bearer token belongs to (guarded)
  GET    /{user}/profile     -- the stored user record (guarded)

Auth policy:
  - "" and /authorize are public -- they are how a client gets credentials.
  - Everything under /{user} depends on require_resource_owner: the bearer
    token must verify for this collection and its subject must equal {user}.
    /authorize is kept out of the guard by route order (it is registered
    before the /{user} routes, so it always matches first).

Request bodies are read as raw JSON (Body(None)) and validated by
auth.credentials.validate() so policy violations produce the policy message
with a 400. Errors propagate as JWTUsersError and are rendered by the
exception handler in api/main.py.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, InsertResponse, ProfileResponse, TokenResponse, WhoAmIResponse
from auth.collection import UserCollection
from auth.dependencies import get_collection, get_secret_store, require_resource_owner
from auth.secrets_store import SecretStore
from auth.service import authorize, register

router = APIRouter()

# Guarded sub-router; downstream handlers for one user's resources live here.
resource_router = APIRouter(prefix="/{user}", dependencies=[Depends(require_resource_owner)])


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=InsertResponse)
def register_user(
    payload: Any = Body(None),
    collection: UserCollection = Depends(get_collection),
) -> InsertResponse:
    """Validate credentials and insert them into the user collection.

    A duplicate username surfaces the collection's error message with a 400.
    """
    return InsertResponse.from_result(register(collection, payload))


@router.post("/authorize", response_model=TokenResponse)
def authorize_user(
    request: Request,
    payload: Any = Body(None),
    collection: UserCollection = Depends(get_collection),
    secret_store: SecretStore = Depends(get_secret_store),
) -> JSONResponse:
    """Exchange valid credentials for a signed bearer token.

    403 if no stored user matches the credentials.
    """
    settings = request.app.state.settings
    token = authorize(collection, secret_store, payload, expire_seconds=settings.token_expire_seconds)
    resp = JSONResponse(content=TokenResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.api_route(
    "/authorize",
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def authorize_wrong_method(request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="method_not_allowed",
                message=f"Cannot {request.method} /authorize, use POST instead",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Guarded endpoints
# ---------------------------------------------------------------------------


@resource_router.get("", response_model=WhoAmIResponse)
def whoami(claims: dict = Depends(require_resource_owner)) -> WhoAmIResponse:
    """Return the subject and audience of the verified bearer token."""
    return WhoAmIResponse(username=claims["sub"], audience=claims["aud"])


@resource_router.get("/profile", response_model=ProfileResponse)
def profile(user: str, collection: UserCollection = Depends(get_collection)) -> ProfileResponse:
    """Return the stored record for {user}. The password hash is never included."""
    record = collection.find_one({"username": user})
    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": f"User '{user}' was not found."},
        )
    return ProfileResponse.from_record(record)


router.include_router(resource_router)
