"""
auth/secrets_store.py -- Per-namespace signing secrets, provisioned on first use.

Every user collection (namespace) signs its tokens with its own random
secret. The secret must never change once created, otherwise tokens issued
earlier stop verifying. FileSecretStore keeps one file per namespace:

    <secrets_dir>/<namespace>     secrets.token_bytes(secret_bytes), mode 0600

Create-if-absent is atomic: the new secret is written to a temp file in the
same directory and published with os.link(), which fails if the target
already exists. A process that loses that race discards its own bytes and
returns the winner's, so two concurrent first uses always agree on one
secret. Within a process, secrets are cached after the first read.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import os
import secrets
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from core.config import MIN_SECRET_BYTES, check_namespace

logger = logging.getLogger("jwtusers.secrets")


class SecretStore(Protocol):
    """Keyed store: namespace -> stable signing secret."""

    def secret_for(self, namespace: str) -> bytes: ...


class FileSecretStore:
    """File-backed SecretStore.

    Usage:
        store = FileSecretStore(Path("secrets"))
        key = store.secret_for("users")   # created on first call, reused after
    """

    def __init__(self, secrets_dir: Path | str, secret_bytes: int = MIN_SECRET_BYTES) -> None:
        if secret_bytes < MIN_SECRET_BYTES:
            raise ValueError(f"secret_bytes must be at least {MIN_SECRET_BYTES}")
        self.secrets_dir = Path(secrets_dir)
        self.secret_bytes = secret_bytes
        self._cache: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def path_for(self, namespace: str) -> Path:
        return self.secrets_dir / check_namespace(namespace)

    def secret_for(self, namespace: str) -> bytes:
        """Return the namespace's secret, creating and persisting it if needed."""
        with self._lock:
            cached = self._cache.get(namespace)
            if cached is not None:
                return cached
            secret, _created = self._read_or_create(namespace)
            self._cache[namespace] = secret
            return secret

    def provision(self, namespace: str) -> bool:
        """Make sure a secret exists for namespace. Returns True if it was just created."""
        with self._lock:
            secret, created = self._read_or_create(namespace)
            self._cache[namespace] = secret
            return created

    def _read_or_create(self, namespace: str) -> tuple[bytes, bool]:
        path = self.path_for(namespace)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return path.read_bytes(), False
        except FileNotFoundError:
            pass
        return self._create(path, namespace)

    def _create(self, path: Path, namespace: str) -> tuple[bytes, bool]:
        secret = secrets.token_bytes(self.secret_bytes)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{namespace}.", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(secret)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                logger.info("Secret for namespace %r was created concurrently; using existing file", namespace)
                return path.read_bytes(), False
        finally:
            os.unlink(tmp_name)
        logger.info("Created signing secret for namespace %r at %s", namespace, path)
        return secret, True
