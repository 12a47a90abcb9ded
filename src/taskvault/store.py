#!/usr/bin/env python3
"""Vault Store - Durable storage for vault metadata and the encrypted blob.

Exactly two records exist: metadata (version, salt) and the blob (nonce,
ciphertext). Both are absent on first run. Every write replaces a record
atomically.
"""

import os
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .crypto import EncryptedBlob
from .errors import StorageError


def _blob_column(value, name):
    """SQLite columns are dynamically typed; anything but a BLOB is damage."""
    if not isinstance(value, bytes):
        raise StorageError(f"Failed to read vault: {name} is not binary")
    return value


@dataclass(frozen=True)
class VaultMetadata:
    """Unencrypted vault parameters. Written once at creation."""

    version: int
    salt: bytes


class VaultStore:
    """Interface for vault persistence backends."""

    def __init__(self):
        self.owner = None  # Session currently holding the vault unlocked

    def read_metadata(self) -> Optional[VaultMetadata]:
        raise NotImplementedError

    def write_metadata(self, metadata: VaultMetadata) -> None:
        raise NotImplementedError

    def read_blob(self) -> Optional[EncryptedBlob]:
        raise NotImplementedError

    def write_blob(self, blob: EncryptedBlob) -> None:
        raise NotImplementedError


class MemoryVaultStore(VaultStore):
    """In-process store. Records live as long as the object."""

    def __init__(self):
        super().__init__()
        self.lock = threading.Lock()
        self._metadata: Optional[VaultMetadata] = None
        self._blob: Optional[EncryptedBlob] = None

    def read_metadata(self):
        with self.lock:
            return self._metadata

    def write_metadata(self, metadata):
        with self.lock:
            self._metadata = VaultMetadata(metadata.version, bytes(metadata.salt))

    def read_blob(self):
        with self.lock:
            return self._blob

    def write_blob(self, blob):
        with self.lock:
            self._blob = EncryptedBlob(bytes(blob.nonce), bytes(blob.ciphertext))


class SqliteVaultStore(VaultStore):
    """SQLite-file store with one single-row table per record."""

    def __init__(self, vault_path):
        super().__init__()
        self.vault_path = Path(vault_path)
        self.lock = threading.Lock()

    def _connect(self):
        """Open the database, creating the schema on first use."""
        created = not self.vault_path.exists()
        if created:
            self.vault_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.vault_path)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL,
                salt BLOB NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_blob (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                nonce BLOB NOT NULL,
                ciphertext BLOB NOT NULL,
                modified TEXT
            )
        """)
        conn.commit()

        if created:
            os.chmod(self.vault_path, 0o600)
        return conn

    def _fetchone(self, query):
        with self.lock:
            try:
                conn = self._connect()
                try:
                    return conn.execute(query).fetchone()
                finally:
                    conn.close()
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"Failed to read vault: {e}") from e

    def _write(self, query, params):
        with self.lock:
            try:
                conn = self._connect()
                try:
                    # Connection context manager commits or rolls back as one unit
                    with conn:
                        conn.execute(query, params)
                finally:
                    conn.close()
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"Failed to write vault: {e}") from e

    def exists(self):
        return self.vault_path.exists()

    def read_metadata(self):
        if not self.exists():
            return None
        row = self._fetchone("SELECT version, salt FROM metadata WHERE id = 1")
        if not row:
            return None
        if isinstance(row[0], bool) or not isinstance(row[0], int):
            raise StorageError("Failed to read vault: metadata version is not an integer")
        return VaultMetadata(version=row[0], salt=_blob_column(row[1], "salt"))

    def write_metadata(self, metadata):
        self._write(
            "INSERT OR REPLACE INTO metadata (id, version, salt) VALUES (1, ?, ?)",
            (metadata.version, metadata.salt)
        )

    def read_blob(self):
        if not self.exists():
            return None
        row = self._fetchone("SELECT nonce, ciphertext FROM vault_blob WHERE id = 1")
        if not row:
            return None
        return EncryptedBlob(
            nonce=_blob_column(row[0], "nonce"),
            ciphertext=_blob_column(row[1], "ciphertext"),
        )

    def write_blob(self, blob):
        now = datetime.now(timezone.utc).isoformat()
        self._write(
            """INSERT OR REPLACE INTO vault_blob (id, nonce, ciphertext, modified)
               VALUES (1, ?, ?, ?)""",
            (blob.nonce, blob.ciphertext, now)
        )
