"""
Instance state storage.

Owner and access policy live for the whole lifetime of an instance. A store
persists the pair; the prover publishes a change only after ``save`` returns.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Tuple

from .hashing import parse_hash, to_hex
from .policy import AccessPolicy, policy_from_dict, policy_to_dict

StateRecord = Tuple[bytes, AccessPolicy]


class StateStore(ABC):
    """Abstract interface for persisting (owner, policy)."""

    @abstractmethod
    def load(self) -> Optional[StateRecord]:
        """Return the saved (owner, policy), or None if nothing was saved."""
        pass

    @abstractmethod
    def save(self, owner: bytes, policy: AccessPolicy) -> None:
        """Persist atomically. Raise on failure; never half-write."""
        pass


class InMemoryStateStore(StateStore):
    """
    In-memory store for development/testing.

    WARNING: state is lost when the process exits.
    """

    def __init__(self):
        self._record: Optional[StateRecord] = None
        self._lock = threading.Lock()

    def load(self) -> Optional[StateRecord]:
        with self._lock:
            return self._record

    def save(self, owner: bytes, policy: AccessPolicy) -> None:
        with self._lock:
            self._record = (bytes(owner), policy)


class SqliteStateStore(StateStore):
    """
    SQLite-backed store keeping a single ``contract_state`` row.

    Connections are thread-local; writes run in a transaction that commits on
    success and rolls back on failure.
    """

    def __init__(self, path: str):
        self._path = Path(path)
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._path), check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=FULL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    @contextmanager
    def _transaction(self):
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS contract_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                owner TEXT NOT NULL,
                policy_json TEXT NOT NULL,
                updated_at INTEGER DEFAULT (strftime('%s', 'now'))
            );""")

    def load(self) -> Optional[StateRecord]:
        conn = self._get_connection()
        row = conn.execute("SELECT owner, policy_json FROM contract_state WHERE id=1").fetchone()
        if row is None:
            return None
        return parse_hash(row["owner"]), policy_from_dict(json.loads(row["policy_json"]))

    def save(self, owner: bytes, policy: AccessPolicy) -> None:
        policy_json = json.dumps(policy_to_dict(policy), sort_keys=True)
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO contract_state(id, owner, policy_json, updated_at) "
                "VALUES(1, ?, ?, strftime('%s','now')) "
                "ON CONFLICT(id) DO UPDATE SET owner=excluded.owner, "
                "policy_json=excluded.policy_json, updated_at=excluded.updated_at",
                (to_hex(owner), policy_json)
            )

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
