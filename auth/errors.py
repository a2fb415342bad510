"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure in register / authorize / the resource guard is terminal for
the request. Each class carries the HTTP status and a stable machine code so
the API layer can translate them in a single exception handler (api/main.py)
without route handlers catching anything themselves.

Messages are part of the client contract -- keep them stable.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class JWTUsersError(Exception):
    """Base class for all errors surfaced to clients by the auth core."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class CredentialValidationError(JWTUsersError):
    """The credentials payload does not conform to the username/password policy.

    field is "username", "password", or "credentials" for shape errors
    (missing keys, non-object body).
    """

    status_code = 400

    def __init__(self, field: str, message: str, detail: str | None = None) -> None:
        super().__init__(message, detail)
        self.field = field

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"invalid_{self.field}"


class StorageError(JWTUsersError):
    """Raised by a user collection; the message is passed to the client verbatim."""

    status_code = 400
    code = "storage_error"


class DuplicateUserError(StorageError):
    code = "duplicate_user"


class AuthenticationError(JWTUsersError):
    """No stored user matches the supplied credentials."""

    status_code = 403
    code = "authentication_failed"


class UnauthorizedError(JWTUsersError):
    """Bearer token missing, malformed, badly signed, for another audience, or expired."""

    status_code = 401
    code = "unauthorized"


class PermissionDeniedError(JWTUsersError):
    """Valid token, but its subject does not own the requested resource."""

    status_code = 401
    code = "permission_denied"
