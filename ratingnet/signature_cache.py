"""
RatingNet Signature Cache

Persists signed grants keyed by (user, sorted contract set) so a user is not
asked to sign again while a grant is still valid. Each grant is stored twice:
under its primary key and under the key extended with its ephemeral public
key, which lets callers pick a specific grant when they hold its public key.
Only the grant under the primary key stays reachable by public key; writing a
newer grant drops the entry of the one it replaces.

Reads are side-effect free. Writes are last-writer-wins: two sessions racing
to create a grant for the same key may both succeed, and the cache converges
to whichever wrote last.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .grants import CacheKey, Grant


class SignatureCache(ABC):
    """Abstract grant store shared by client sessions."""

    @abstractmethod
    def _read(self, storage_key: str) -> Optional[Grant]:
        pass

    @abstractmethod
    def _write(self, storage_keys: List[str], grant: Grant) -> None:
        pass

    @abstractmethod
    def _delete(self, storage_keys: List[str]) -> int:
        pass

    @abstractmethod
    def entries(self) -> List[Grant]:
        """Distinct grants currently stored under a primary key."""
        pass

    def get(
        self,
        user_address: str,
        contract_addresses: Iterable[str],
        public_key: Optional[str] = None,
    ) -> Optional[Grant]:
        key = CacheKey.create(user_address, contract_addresses, public_key or "")
        return self._read(key.storage_key())

    def put(self, grant: Grant) -> None:
        """Store `grant`, dropping the public-key entry of any grant it replaces."""
        self._write(
            [grant.cache_key().storage_key(), grant.cache_key(with_public_key=True).storage_key()],
            grant,
        )

    @staticmethod
    def _stale_keys(previous: Optional[Grant], storage_keys: List[str]) -> List[str]:
        if previous is None:
            return []
        old = previous.cache_key(with_public_key=True).storage_key()
        return [] if old in storage_keys else [old]

    def remove(self, user_address: str, contract_addresses: Iterable[str]) -> int:
        key = CacheKey.create(user_address, contract_addresses)
        keys = [key.storage_key()]
        current = self._read(keys[0])
        if current is not None:
            keys.append(current.cache_key(with_public_key=True).storage_key())
        return self._delete(keys)

    @abstractmethod
    def clear(self) -> int:
        """Drop every stored grant; returns the number of primary entries removed."""
        pass


class InMemorySignatureCache(SignatureCache):
    """Process-local cache; the default for a single client session."""

    def __init__(self):
        self._grants: Dict[str, Grant] = {}
        self._primary: Dict[str, Grant] = {}
        self._lock = threading.Lock()

    def _read(self, storage_key):
        with self._lock:
            return self._grants.get(storage_key)

    def _write(self, storage_keys, grant):
        with self._lock:
            for k in self._stale_keys(self._grants.get(storage_keys[0]), storage_keys):
                self._grants.pop(k, None)
            for k in storage_keys:
                self._grants[k] = grant
            self._primary[storage_keys[0]] = grant

    def _delete(self, storage_keys):
        with self._lock:
            removed = 0
            for k in storage_keys:
                if self._grants.pop(k, None) is not None:
                    removed += 1
                self._primary.pop(k, None)
            return removed

    def entries(self):
        with self._lock:
            return list(self._primary.values())

    def clear(self):
        with self._lock:
            removed = len(self._primary)
            self._grants.clear()
            self._primary.clear()
            return removed


class SqliteSignatureCache(SignatureCache):
    """
    SQLite-backed cache shared by sessions on one machine.

    Thread-local connections in WAL mode; `INSERT OR REPLACE` gives
    last-writer-wins per key.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._local = threading.local()
        self._init_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False, timeout=30)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            self._local.conn = conn
        return conn

    @contextmanager
    def _transaction(self):
        conn = self._connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS grants (
                storage_key TEXT PRIMARY KEY,
                is_primary INTEGER NOT NULL,
                grant_json TEXT NOT NULL,
                written_at INTEGER DEFAULT (strftime('%s', 'now'))
            );""")

    def _read(self, storage_key):
        row = self._connection().execute(
            "SELECT grant_json FROM grants WHERE storage_key = ?", (storage_key,)
        ).fetchone()
        if row is None:
            return None
        return Grant.from_dict(json.loads(row[0]))

    def _write(self, storage_keys, grant):
        payload = json.dumps(grant.to_dict(), sort_keys=True)
        with self._transaction() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT grant_json FROM grants WHERE storage_key = ?", (storage_keys[0],)
            ).fetchone()
            previous = Grant.from_dict(json.loads(row[0])) if row is not None else None
            for k in self._stale_keys(previous, storage_keys):
                conn.execute("DELETE FROM grants WHERE storage_key = ?", (k,))
            for index, k in enumerate(storage_keys):
                conn.execute(
                    "INSERT OR REPLACE INTO grants (storage_key, is_primary, grant_json) VALUES (?, ?, ?)",
                    (k, 1 if index == 0 else 0, payload),
                )

    def _delete(self, storage_keys):
        with self._transaction() as conn:
            removed = 0
            for k in storage_keys:
                removed += conn.execute("DELETE FROM grants WHERE storage_key = ?", (k,)).rowcount
            return removed

    def entries(self):
        rows = self._connection().execute(
            "SELECT grant_json FROM grants WHERE is_primary = 1 ORDER BY storage_key"
        ).fetchall()
        return [Grant.from_dict(json.loads(r[0])) for r in rows]

    def clear(self):
        with self._transaction() as conn:
            removed = conn.execute("SELECT COUNT(*) FROM grants WHERE is_primary = 1").fetchone()[0]
            conn.execute("DELETE FROM grants")
            return removed

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
