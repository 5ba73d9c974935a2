"""
MEDREG Registry

Write-once mapping from patient id to report payload, with a single owner
fixed at deployment. Only the owner may insert, no entry is ever replaced,
and every successful insert appends exactly one notification to the witness
chain in the same transaction as the report row.

Usage:
    from medreg.registry import Registry

    registry = Registry.deploy("a1b2c3d4e5f60718", db_path)
    registry.add_report("a1b2c3d4e5f60718", 1, "report-hash-abc")
    registry.get_report(1)        # "report-hash-abc"
    registry.get_report(999)      # ""
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Iterator, List, Optional

from . import repository
from .config import PATIENT_ID_MAX, get_db_path
from .errors import AccessDenied, AlreadyDeployed, AlreadyExists, InvalidPatientId, NotDeployed
from .logger import get_logger
from .models import Notification, RegistryAction, ReportRecord
from .witness import WitnessChain

logger = get_logger(__name__)

# One writer lock per database file; BEGIN IMMEDIATE covers other processes.
_WRITE_LOCKS: Dict[str, RLock] = {}
_WRITE_LOCKS_GUARD = Lock()


def _write_lock(db_path: Path) -> RLock:
    key = str(Path(db_path).resolve())
    with _WRITE_LOCKS_GUARD:
        lock = _WRITE_LOCKS.get(key)
        if lock is None:
            lock = _WRITE_LOCKS[key] = RLock()
        return lock


def is_valid_patient_id(patient_id) -> bool:
    if isinstance(patient_id, bool) or not isinstance(patient_id, int):
        return False
    return 0 <= patient_id <= PATIENT_ID_MAX


def _check_patient_id(patient_id) -> None:
    if not is_valid_patient_id(patient_id):
        raise InvalidPatientId(
            f"Patient id must be an integer in [0, {PATIENT_ID_MAX}], got {patient_id!r}"
        )


class Registry:
    """Owner-gated, write-once report registry backed by SQLite.

    Instances are cheap handles onto a database; several registries can
    live side by side as long as they use different database files.
    """

    def __init__(self, db_path: Path, owner: str):
        self.db_path = Path(db_path)
        self._owner = owner
        self.witness = WitnessChain(self.db_path)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def deploy(cls, caller: str, db_path: Optional[Path] = None) -> "Registry":
        """Create the registry with ``caller`` as its permanent owner.

        Raises:
            AlreadyDeployed: the database already has an owner
            ValueError: empty caller identity
        """
        if not caller:
            raise ValueError("Caller identity is required to deploy")
        db_path = Path(db_path or get_db_path())
        repository.init_schema(db_path)

        with _write_lock(db_path):
            conn = repository.connect(db_path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    repository.insert_owner(conn, caller)
                    conn.execute("COMMIT")
                except sqlite3.IntegrityError:
                    conn.execute("ROLLBACK")
                    existing = cls.open(db_path)
                    raise AlreadyDeployed(f"Registry already deployed with owner {existing.owner}")
            finally:
                conn.close()

        logger.info("Registry deployed at %s with owner %s", db_path, caller)
        return cls(db_path, caller)

    @classmethod
    def open(cls, db_path: Optional[Path] = None) -> "Registry":
        """Attach to an existing deployment.

        Read-only: a missing file or schema means nothing was deployed.

        Raises:
            NotDeployed: no owner recorded in the database
        """
        db_path = Path(db_path or get_db_path())
        if not db_path.exists():
            raise NotDeployed(f"No registry deployed at {db_path}")
        conn = repository.connect(db_path)
        try:
            meta = repository.get_owner(conn)
        except sqlite3.OperationalError as e:
            if "no such table" not in str(e):
                raise
            meta = None
        finally:
            conn.close()
        if meta is None:
            raise NotDeployed(f"No registry deployed at {db_path}")
        return cls(db_path, meta["owner"])

    @property
    def owner(self) -> str:
        return self._owner

    def get_owner(self) -> str:
        return self._owner

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with _write_lock(self.db_path):
            conn = repository.connect(self.db_path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()

    # =========================================================================
    # WRITES
    # =========================================================================

    def add_report(self, caller: str, patient_id: int, report_data: str) -> Notification:
        """Store ``report_data`` for ``patient_id`` and emit one notification.

        Raises:
            AccessDenied: caller is not the owner
            InvalidPatientId: id outside the unsigned 256-bit range
            AlreadyExists: a report (even an empty one) is already stored
        """
        if caller != self._owner:
            logger.warning("Rejected report for patient %r from non-owner %s", patient_id, caller)
            raise AccessDenied(caller)
        _check_patient_id(patient_id)
        if not isinstance(report_data, str):
            raise TypeError("report_data must be a string")

        notification = Notification(patient_id=patient_id, added_by=caller)
        with self._transaction() as conn:
            if repository.get_report(conn, patient_id) is not None:
                logger.warning("Rejected overwrite of report for patient %d", patient_id)
                raise AlreadyExists(patient_id)
            try:
                repository.insert_report(conn, patient_id, report_data, caller)
            except sqlite3.IntegrityError:
                raise AlreadyExists(patient_id)
            entry = self.witness.record(
                RegistryAction.REPORT_ADDED.value,
                caller,
                notification.details(),
                content_id=str(patient_id),
                conn=conn,
            )

        notification.entry_hash = entry["hash"]
        notification.timestamp = entry["timestamp"]
        logger.info("Report added for patient %d by %s", patient_id, caller)
        return notification

    # =========================================================================
    # READS
    # =========================================================================

    def _read(self, patient_id) -> Optional[Dict]:
        if not is_valid_patient_id(patient_id):
            return None
        conn = repository.connect(self.db_path)
        try:
            return repository.get_report(conn, patient_id)
        finally:
            conn.close()

    def get_report(self, patient_id) -> str:
        """Stored payload, or the empty string when nothing was written."""
        row = self._read(patient_id)
        return row["report_data"] if row else ""

    def has_report(self, patient_id) -> bool:
        return self._read(patient_id) is not None

    def get_record(self, patient_id) -> Optional[ReportRecord]:
        row = self._read(patient_id)
        if row is None:
            return None
        return ReportRecord(
            patient_id=int(row["patient_id"]),
            report_data=row["report_data"],
            added_by=row["added_by"],
            added_at=row["added_at"],
        )

    def report_count(self) -> int:
        conn = repository.connect(self.db_path)
        try:
            return repository.count_reports(conn)
        finally:
            conn.close()

    def notifications(
        self,
        patient_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Notification]:
        entries = self.witness.list_entries(
            content_id=str(patient_id) if patient_id is not None else None,
            action=RegistryAction.REPORT_ADDED.value,
            limit=limit,
            offset=offset,
        )
        return [Notification.from_entry(e) for e in entries]

    def verify_notifications(self) -> bool:
        return self.witness.verify()
