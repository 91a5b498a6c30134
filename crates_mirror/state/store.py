#!/usr/bin/env python3

import os
import sqlite3
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..sync.models import SyncStatus, StateEntry, StateWriteError

logger = logging.getLogger(__name__)

class StateStore(ABC):
    """Durable table of package name -> (repository, status).

    Entries are never deleted. Writes are upserts keyed by name and each one
    is committed on its own.
    """

    @abstractmethod
    def get_entry(self, name: str) -> Optional[StateEntry]:
        pass

    @abstractmethod
    def upsert_pending(self, name: str, repository: str) -> None:
        pass

    @abstractmethod
    def set_status(self, name: str, status: SyncStatus, repository: Optional[str] = None) -> None:
        """Record a terminal status, also replacing the repository when one is given"""
        pass

    @abstractmethod
    def entries(self) -> List[StateEntry]:
        pass

    def get_status(self, name: str) -> Optional[SyncStatus]:
        entry = self.get_entry(name)
        return entry.status if entry else None

    def count_by_status(self) -> Dict[SyncStatus, int]:
        counts = {status: 0 for status in SyncStatus}
        for entry in self.entries():
            counts[entry.status] += 1
        return counts

    def count_unrecognized(self) -> int:
        """Entries whose stored status this version does not understand"""
        return 0

    def close(self) -> None:
        pass

class MemoryStateStore(StateStore):
    def __init__(self):
        self._entries: Dict[str, StateEntry] = {}

    def get_entry(self, name: str) -> Optional[StateEntry]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        return StateEntry(entry.name, entry.repository, entry.status)

    def upsert_pending(self, name: str, repository: str) -> None:
        self._entries[name] = StateEntry(name, repository, SyncStatus.PENDING)

    def set_status(self, name: str, status: SyncStatus, repository: Optional[str] = None) -> None:
        existing = self._entries.get(name)
        if repository is None and existing:
            repository = existing.repository
        self._entries[name] = StateEntry(name, repository, status)

    def entries(self) -> List[StateEntry]:
        return [self.get_entry(name) for name in sorted(self._entries)]

class SqliteStateStore(StateStore):
    SCHEMA = """
        CREATE TABLE IF NOT EXISTS crates (
            name        TEXT PRIMARY KEY,
            repository  TEXT,
            status      TEXT NOT NULL
        )
    """

    def __init__(self, database_path: str):
        self.database_path = database_path
        if database_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(database_path))
            os.makedirs(parent, exist_ok=True)
        self._conn = sqlite3.connect(database_path)
        self._conn.execute(self.SCHEMA)
        self._conn.commit()

    def get_entry(self, name: str) -> Optional[StateEntry]:
        row = self._conn.execute(
            "SELECT name, repository, status FROM crates WHERE name = ?",
            (name,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def _row_to_entry(self, row) -> Optional[StateEntry]:
        status = SyncStatus.parse(row[2])
        if status is None:
            logger.warning(f"Ignoring unknown status '{row[2]}' stored for {row[0]}")
            return None
        return StateEntry(name=row[0], repository=row[1], status=status)

    def upsert_pending(self, name: str, repository: str) -> None:
        self._write(
            """INSERT INTO crates (name, repository, status)
               VALUES (?, ?, ?)
               ON CONFLICT(name) DO UPDATE SET repository = excluded.repository,
                                               status = excluded.status""",
            (name, repository, SyncStatus.PENDING.value)
        )

    def set_status(self, name: str, status: SyncStatus, repository: Optional[str] = None) -> None:
        self._write(
            """INSERT INTO crates (name, repository, status)
               VALUES (?, ?, ?)
               ON CONFLICT(name) DO UPDATE SET
                   repository = COALESCE(excluded.repository, crates.repository),
                   status = excluded.status""",
            (name, repository, status.value)
        )

    def _write(self, statement: str, params: tuple) -> None:
        try:
            with self._conn:
                self._conn.execute(statement, params)
        except sqlite3.Error as e:
            raise StateWriteError(f"Failed to write state for {params[0]}: {e}") from e

    def entries(self) -> List[StateEntry]:
        rows = self._conn.execute(
            "SELECT name, repository, status FROM crates ORDER BY name"
        ).fetchall()
        return [entry for entry in (self._row_to_entry(row) for row in rows) if entry]

    def count_unrecognized(self) -> int:
        known = [status.value for status in SyncStatus]
        placeholders = ", ".join("?" for _ in known)
        row = self._conn.execute(
            f"SELECT COUNT(*) FROM crates WHERE status NOT IN ({placeholders})",
            known
        ).fetchone()
        return row[0]

    def close(self) -> None:
        self._conn.close()
