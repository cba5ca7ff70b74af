"""
Case persistence for the dispatch workflow.

Every workflow mutation goes through `CaseRepository.transaction(case_id)`,
which yields a private working copy of the case and commits it atomically when
the block exits cleanly. Raising inside the block discards the copy, so a
rejected operation never leaves a partial write behind. Transactions on the
same case are serialized; transactions on different cases do not contend.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from ems_routing.core.exceptions import CaseNotFoundError, ConcurrencyConflictError
from ems_routing.core.models import CaseStatus, EmergencyCase

logger = logging.getLogger(__name__)


class CaseRepository(ABC):
    """Storage for emergency cases with a per-case atomic update primitive."""

    @abstractmethod
    def get(self, case_id: str) -> EmergencyCase:
        """Return a snapshot of a case; raises CaseNotFoundError."""

    @abstractmethod
    def add(self, case: EmergencyCase) -> None:
        """Insert a new case; raises ConcurrencyConflictError if the id exists."""

    @abstractmethod
    def list_by_status(self, status: CaseStatus) -> List[EmergencyCase]:
        """Snapshots of every case currently in a status."""

    @abstractmethod
    def transaction(self, case_id: str):
        """Context manager yielding a working copy that is committed on clean exit."""


class InMemoryCaseRepository(CaseRepository):
    """Thread-safe in-process repository guarded by one lock per case."""

    def __init__(self):
        self._cases: Dict[str, EmergencyCase] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, case_id: str) -> threading.Lock:
        with self._registry_lock:
            if case_id not in self._cases:
                raise CaseNotFoundError(case_id)
            return self._locks[case_id]

    def get(self, case_id: str) -> EmergencyCase:
        with self._lock_for(case_id):
            return self._cases[case_id].model_copy(deep=True)

    def add(self, case: EmergencyCase) -> None:
        with self._registry_lock:
            if case.case_id in self._cases:
                raise ConcurrencyConflictError(f"Case {case.case_id} already exists")
            self._cases[case.case_id] = case.model_copy(deep=True)
            self._locks[case.case_id] = threading.Lock()
        logger.info(f"Added case {case.case_id}")

    def list_by_status(self, status: CaseStatus) -> List[EmergencyCase]:
        with self._registry_lock:
            case_ids = list(self._cases)
        matches = []
        for case_id in case_ids:
            case = self.get(case_id)
            if case.status == status:
                matches.append(case)
        return matches

    @contextmanager
    def transaction(self, case_id: str) -> Iterator[EmergencyCase]:
        lock = self._lock_for(case_id)
        with lock:
            working = self._cases[case_id].model_copy(deep=True)
            yield working
            working.version += 1
            self._cases[case_id] = working


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path), timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 30000")
    return conn


class SqliteCaseRepository(CaseRepository):
    """
    SQLite-backed repository storing one JSON document per case.

    Each transaction runs under BEGIN IMMEDIATE, which takes the database
    write lock up front, and the write is conditional on the version that was
    read, so a concurrent writer can never be silently overwritten.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = _connect(self.path)
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS emergency_cases (
                    case_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    payload TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_emergency_cases_status "
                "ON emergency_cases(status)"
            )
        finally:
            conn.close()

    def get(self, case_id: str) -> EmergencyCase:
        conn = _connect(self.path)
        try:
            row = conn.execute(
                "SELECT payload, version FROM emergency_cases WHERE case_id = ?",
                (case_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise CaseNotFoundError(case_id)
        return self._load(row)

    def add(self, case: EmergencyCase) -> None:
        conn = _connect(self.path)
        try:
            conn.execute(
                "INSERT INTO emergency_cases (case_id, status, version, payload) "
                "VALUES (?, ?, ?, ?)",
                (case.case_id, case.status.value, case.version, case.model_dump_json()),
            )
        except sqlite3.IntegrityError as e:
            raise ConcurrencyConflictError(f"Case {case.case_id} already exists") from e
        finally:
            conn.close()
        logger.info(f"Added case {case.case_id} to {self.path}")

    def list_by_status(self, status: CaseStatus) -> List[EmergencyCase]:
        conn = _connect(self.path)
        try:
            rows = conn.execute(
                "SELECT payload, version FROM emergency_cases WHERE status = ? "
                "ORDER BY case_id",
                (CaseStatus(status).value,),
            ).fetchall()
        finally:
            conn.close()
        return [self._load(row) for row in rows]

    @contextmanager
    def transaction(self, case_id: str) -> Iterator[EmergencyCase]:
        conn = _connect(self.path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT payload, version FROM emergency_cases WHERE case_id = ?",
                    (case_id,),
                ).fetchone()
                if row is None:
                    raise CaseNotFoundError(case_id)

                working = self._load(row)
                read_version = working.version
                yield working

                working.version = read_version + 1
                cursor = conn.execute(
                    "UPDATE emergency_cases SET status = ?, version = ?, payload = ? "
                    "WHERE case_id = ? AND version = ?",
                    (
                        working.status.value,
                        working.version,
                        working.model_dump_json(),
                        case_id,
                        read_version,
                    ),
                )
                if cursor.rowcount != 1:
                    raise ConcurrencyConflictError(
                        f"Case {case_id} was modified concurrently"
                    )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    @staticmethod
    def _load(row: sqlite3.Row) -> EmergencyCase:
        case = EmergencyCase.model_validate_json(row["payload"])
        case.version = row["version"]
        return case


def open_repository(database_path: Optional[Union[str, Path]] = None) -> CaseRepository:
    """SQLite repository at `database_path`, or an in-memory one when no path is given."""
    if database_path:
        return SqliteCaseRepository(database_path)
    logger.info("No case database configured; using in-memory repository")
    return InMemoryCaseRepository()
