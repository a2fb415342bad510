"""
auth/store.py -- SQLAlchemy Core user collection.

Pattern: Repository + Data Mapper. SqlUserCollection is the repository;
_row_to_user is the mapper. Route and service code never touches SQL directly.

The table is named after the collection, so one database can hold several
independent collections (namespaces), each with its own signing secret.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Passwords are stored as bcrypt hashes, never plaintext. find_one() with a
  "password" key verifies against the hash instead of comparing columns.
  Unknown usernames still run bcrypt against a dummy hash so response time
  does not reveal whether a username exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import bcrypt
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateUserError, StorageError
from auth.models import InsertResult, UserRecord
from core.config import check_namespace

logger = logging.getLogger("jwtusers.store")

_QUERY_KEYS = {"username", "password"}


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_user(row) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlUserCollection:
    """UserCollection backed by one SQL table.

    Usage:
        users = SqlUserCollection("sqlite:///users.db", name="users")
        users.insert_one({"username": "alice_1", "password": "Abcdef1!"})
        users.find_one({"username": "alice_1", "password": "Abcdef1!"})
        users.close()
    """

    def __init__(self, db_url: str, name: str = "users", bcrypt_rounds: int = 12) -> None:
        self.name = check_namespace(name)
        self.bcrypt_rounds = bcrypt_rounds
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._metadata = MetaData()
        self._users = Table(
            name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("username", String(255), nullable=False, unique=True),
            Column("hashed_password", Text, nullable=False),
            Column("created_at", String(32), nullable=False),
        )
        self._metadata.create_all(self.engine)
        # Timing equalization target for unknown usernames.
        self._dummy_hash = hash_password("jwtusers_timing_dummy", rounds=bcrypt_rounds)

    def insert_one(self, document: dict[str, Any]) -> InsertResult:
        """Insert a user and return the assigned id.

        Raises DuplicateUserError if the username is already taken.
        """
        username = document["username"]
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    self._users.insert().values(
                        username=username,
                        hashed_password=hash_password(document["password"], rounds=self.bcrypt_rounds),
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError:
            raise DuplicateUserError(f"Username '{username}' is already registered in '{self.name}'.") from None
        inserted_id = result.inserted_primary_key[0]
        logger.info("Inserted user %r into %r (id=%s)", username, self.name, inserted_id)
        return InsertResult(acknowledged=True, inserted_id=inserted_id)

    def find_one(self, query: dict[str, Any]) -> UserRecord | None:
        """Return the user matching query, or None.

        Supported keys: "username" (required) and "password". With a password
        the record is returned only if the bcrypt hash verifies.
        """
        unknown = set(query) - _QUERY_KEYS
        if unknown or "username" not in query:
            raise StorageError(f"Unsupported query on '{self.name}': {sorted(query)}")
        with self.engine.connect() as conn:
            row = conn.execute(select(self._users).where(self._users.c.username == query["username"])).fetchone()
        if "password" not in query:
            return _row_to_user(row) if row is not None else None
        if row is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(query["password"], self._dummy_hash)
            return None
        if not verify_password(query["password"], row.hashed_password):
            return None
        return _row_to_user(row)

    def close(self) -> None:
        self.engine.dispose()
