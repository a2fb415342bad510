"""
auth/models.py -- Domain dataclasses exchanged with user collections.

Pattern: Data class (pure data container, zero logic). Collections own
persistence; the auth core only looks at whether a record exists.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UserRecord:
    """A stored user as returned by UserCollection.find_one().

    hashed_password is whatever the collection stores; the core never reads it.
    """

    username: str
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None


@dataclass
class InsertResult:
    """Outcome of UserCollection.insert_one(), returned to the client as JSON."""

    acknowledged: bool
    inserted_id: int | str | None = None
