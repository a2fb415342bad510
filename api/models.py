"""
API request and response models for the jwt-users REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request bodies are NOT modelled here: the users router reads the raw JSON and
hands it to auth.credentials.validate() so policy errors come back as 400
with the policy message rather than FastAPI's generic 422.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from auth.models import InsertResult, UserRecord

# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class InsertResponse(BaseModel):
    """Response body for POST /users -- the collection's insert result."""

    acknowledged: bool
    inserted_id: Union[int, str, None] = None

    @classmethod
    def from_result(cls, result: InsertResult) -> "InsertResponse":
        return cls(acknowledged=result.acknowledged, inserted_id=result.inserted_id)


class TokenResponse(BaseModel):
    """Response body for POST /users/authorize."""

    token: str
    token_type: str = "bearer"


class WhoAmIResponse(BaseModel):
    """Response body for GET /users/{user} -- who the bearer token belongs to."""

    model_config = ConfigDict(frozen=True)

    username: str
    audience: str


class ProfileResponse(BaseModel):
    """Response body for GET /users/{user}/profile. Never includes the password hash."""

    id: Union[int, str, None] = None
    username: str
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: UserRecord) -> "ProfileResponse":
        return cls(id=record.id, username=record.username, created_at=record.created_at)


class ErrorDetail(BaseModel):
    """Machine-readable code plus the human message clients may branch on."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope used by every error response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    version: str
    namespace: Optional[str] = None
