"""
auth/collection.py -- The storage capability the auth core depends on.

A user collection is anything with:
  name                      logical collection name; doubles as the token
                            audience and the signing-secret namespace
  insert_one(document)      persist {"username", "password"}; raise
                            StorageError (e.g. DuplicateUserError) on failure.
                            Other exception types are wrapped into
                            StorageError by auth.service.register()
  find_one(query)           return a UserRecord matching every key of query,
                            or None

auth/store.py ships a SQLAlchemy implementation. Applications may pass their
own collection to api.main.create_app(), either directly, as an awaitable,
or as a zero-argument factory; resolve_collection() normalizes all three once
at startup.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import inspect
from typing import Any, Protocol, runtime_checkable

from auth.models import InsertResult, UserRecord
from core.config import check_namespace


@runtime_checkable
class UserCollection(Protocol):
    name: str

    def insert_one(self, document: dict[str, Any]) -> InsertResult: ...

    def find_one(self, query: dict[str, Any]) -> UserRecord | None: ...


async def resolve_collection(source: Any) -> UserCollection:
    """Turn a collection, an awaitable of one, or a factory into a UserCollection.

    Raises TypeError if the result lacks the required capabilities and
    ValueError if its name is not a usable namespace.
    """
    if callable(source) and not isinstance(source, UserCollection):
        source = source()
    if inspect.isawaitable(source):
        source = await source
    if not isinstance(source, UserCollection):
        raise TypeError(f"{type(source).__name__} does not provide name, insert_one() and find_one()")
    check_namespace(source.name)
    return source
