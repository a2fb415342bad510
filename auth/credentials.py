"""
auth/credentials.py -- Username/password policy check.

validate() is the guard that runs first in both the registration and the
authorization flows. It is pure: no I/O, no state. A rejected payload never
reaches the user collection or the secret store.

Policy:
  username  non-empty, small letters, digits and underscores only.
  password  at least 8 chars with an uppercase letter, a lowercase letter,
            a digit and one char from SPECIAL_CHARS, at most 72 bytes as UTF-8
            (bcrypt, used by auth/store.py, refuses longer input).

Shape errors (missing keys, non-object body, null body) are reported with
field="credentials" and the generic message; a present field that has the
wrong type or breaks its policy is reported under that field's name.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from auth.errors import CredentialValidationError

USERNAME_PATTERN = r"^[a-z0-9_]+$"
SPECIAL_CHARS = "~`!@#$%^&*()-_+={}[]|;:\"<>,./?"
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72

USERNAME_MESSAGE = "Username should only include small letters, digits and underscores."
PASSWORD_MESSAGE = (
    "Password should be at least 8 chars long and include a capital letter, "
    "a small letter, a digit and a special char."
)
GENERIC_MESSAGE = (
    "An error occurred while validating the provided credentials. Make sure the "
    "password is at least 8 chars long and includes a capital letter, a small letter, "
    "a digit and a special char, and the username only includes small letters, "
    "digits and underscores."
)

_FIELD_MESSAGES = {
    "username": USERNAME_MESSAGE,
    "password": PASSWORD_MESSAGE,
}

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")


def _utf8_length(value: str) -> int | None:
    """Byte length as UTF-8, or None for strings holding lone surrogates."""
    try:
        return len(value.encode("utf-8"))
    except UnicodeEncodeError:
        return None


def password_meets_policy(password: str) -> bool:
    size = _utf8_length(password)
    return (
        size is not None
        and size <= MAX_PASSWORD_BYTES
        and len(password) >= MIN_PASSWORD_LENGTH
        and _UPPER.search(password) is not None
        and _LOWER.search(password) is not None
        and _DIGIT.search(password) is not None
        and any(ch in SPECIAL_CHARS for ch in password)
    )


class Credentials(BaseModel):
    """A validated username/password pair. Lives for one request only."""

    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    username: str = Field(min_length=1, pattern=USERNAME_PATTERN)
    password: str

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        if not password_meets_policy(value):
            raise ValueError(PASSWORD_MESSAGE)
        return value

    def as_document(self) -> dict[str, str]:
        """Plain dict form handed to the user collection and embedded in tokens."""
        return {"username": self.username, "password": self.password}


def _to_credential_error(exc: ValidationError) -> CredentialValidationError:
    errors = exc.errors()
    # Missing keys and whole-body type errors are shape problems, not field ones.
    if any(err["type"] == "missing" or not err["loc"] for err in errors):
        return CredentialValidationError("credentials", GENERIC_MESSAGE, detail=errors[0]["msg"])
    first = errors[0]
    field = str(first["loc"][0])
    if field not in _FIELD_MESSAGES:
        return CredentialValidationError("credentials", GENERIC_MESSAGE, detail=first["msg"])
    return CredentialValidationError(field, _FIELD_MESSAGES[field], detail=first["msg"])


def validate(candidate: Any) -> Credentials:
    """Check a decoded request body against the credentials policy.

    Returns the parsed Credentials on success. Raises CredentialValidationError
    tagged with the offending field otherwise.
    """
    try:
        return Credentials.model_validate(candidate)
    except ValidationError as exc:
        raise _to_credential_error(exc) from None
