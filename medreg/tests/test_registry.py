#!/usr/bin/env python3
"""
MEDREG Registry Tests

- Deployment and owner immutability
- Owner-only inserts
- Write-once keys (including empty payloads)
- Read transparency
- One notification per successful insert
"""

import sqlite3
import threading

import pytest

from conftest import OWNER, STRANGER
from medreg.config import PATIENT_ID_MAX
from medreg.errors import AccessDenied, AlreadyDeployed, AlreadyExists, InvalidPatientId, NotDeployed
from medreg.models import Notification
from medreg.registry import Registry


# =============================================================================
# DEPLOYMENT
# =============================================================================

class TestDeployment:

    def test_deployer_becomes_owner(self, registry):
        assert registry.get_owner() == OWNER
        assert registry.owner == OWNER

    def test_second_deploy_rejected(self, registry, db_path):
        with pytest.raises(AlreadyDeployed):
            Registry.deploy(STRANGER, db_path)
        assert Registry.open(db_path).get_owner() == OWNER

    def test_open_without_deploy(self, db_path):
        with pytest.raises(NotDeployed):
            Registry.open(db_path)

    def test_open_is_read_only(self, db_path):
        with pytest.raises(NotDeployed):
            Registry.open(db_path)
        assert not db_path.exists()

        sqlite3.connect(db_path).close()
        with pytest.raises(NotDeployed):
            Registry.open(db_path)
        conn = sqlite3.connect(db_path)
        tables = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        conn.close()
        assert tables == []

    def test_empty_caller_rejected(self, db_path):
        with pytest.raises(ValueError):
            Registry.deploy("", db_path)

    def test_reopen_sees_same_state(self, registry, db_path):
        registry.add_report(OWNER, 7, "r7")
        reopened = Registry.open(db_path)
        assert reopened.get_owner() == OWNER
        assert reopened.get_report(7) == "r7"

    def test_independent_instances(self, tmp_path):
        a = Registry.deploy("owner-a", tmp_path / "a.db")
        b = Registry.deploy("owner-b", tmp_path / "b.db")
        a.add_report("owner-a", 1, "from a")
        assert b.get_report(1) == ""
        assert a.get_owner() == "owner-a"
        assert b.get_owner() == "owner-b"

    def test_owner_unchanged_after_activity(self, registry):
        registry.add_report(OWNER, 1, "x")
        with pytest.raises(AccessDenied):
            registry.add_report(STRANGER, 2, "y")
        with pytest.raises(AlreadyExists):
            registry.add_report(OWNER, 1, "z")
        registry.get_report(3)
        assert registry.get_owner() == OWNER


# =============================================================================
# INSERTS
# =============================================================================

class TestAddReport:

    def test_owner_can_add(self, registry):
        notification = registry.add_report(OWNER, 1, "report-hash-abc")
        assert isinstance(notification, Notification)
        assert notification.patient_id == 1
        assert notification.added_by == OWNER
        assert notification.entry_hash
        assert registry.get_report(1) == "report-hash-abc"

    def test_second_write_rejected(self, registry):
        registry.add_report(OWNER, 1, "report-hash-abc")
        with pytest.raises(AlreadyExists) as exc:
            registry.add_report(OWNER, 1, "different")
        assert exc.value.patient_id == 1
        assert registry.get_report(1) == "report-hash-abc"

    def test_identical_rewrite_rejected(self, registry):
        registry.add_report(OWNER, 1, "same")
        with pytest.raises(AlreadyExists):
            registry.add_report(OWNER, 1, "same")

    def test_non_owner_denied(self, registry):
        with pytest.raises(AccessDenied) as exc:
            registry.add_report(STRANGER, 2, "x")
        assert exc.value.caller == STRANGER
        assert registry.get_report(2) == ""
        assert registry.has_report(2) is False

    def test_access_checked_before_existence(self, registry):
        registry.add_report(OWNER, 1, "x")
        with pytest.raises(AccessDenied):
            registry.add_report(STRANGER, 1, "y")

    def test_empty_payload_occupies_key(self, registry):
        registry.add_report(OWNER, 5, "")
        assert registry.get_report(5) == ""
        assert registry.has_report(5) is True
        with pytest.raises(AlreadyExists):
            registry.add_report(OWNER, 5, "later")
        assert registry.get_report(5) == ""

    @pytest.mark.parametrize("bad_id", [-1, PATIENT_ID_MAX + 1, True, "1", 1.0])
    def test_invalid_patient_id(self, registry, bad_id):
        with pytest.raises(InvalidPatientId):
            registry.add_report(OWNER, bad_id, "x")
        assert registry.notifications() == []

    def test_boundary_ids(self, registry):
        registry.add_report(OWNER, 0, "zero")
        registry.add_report(OWNER, PATIENT_ID_MAX, "max")
        assert registry.get_report(0) == "zero"
        assert registry.get_report(PATIENT_ID_MAX) == "max"

    def test_non_string_payload_rejected(self, registry):
        with pytest.raises(TypeError):
            registry.add_report(OWNER, 1, b"bytes")
        assert registry.has_report(1) is False

    def test_record_tracks_writer(self, registry):
        registry.add_report(OWNER, 9, "nine")
        record = registry.get_record(9)
        assert record.patient_id == 9
        assert record.report_data == "nine"
        assert record.added_by == OWNER
        assert record.added_at
        assert registry.get_record(10) is None

    def test_concurrent_writes_single_winner(self, registry):
        results = []

        def attempt(payload):
            try:
                registry.add_report(OWNER, 42, payload)
                results.append(("ok", payload))
            except AlreadyExists:
                results.append(("exists", payload))

        threads = [threading.Thread(target=attempt, args=(f"p{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [p for status, p in results if status == "ok"]
        assert len(winners) == 1
        assert registry.get_report(42) == winners[0]
        assert len(registry.notifications(patient_id=42)) == 1


# =============================================================================
# READS
# =============================================================================

class TestReads:

    def test_unknown_id_is_empty(self, registry):
        assert registry.get_report(999) == ""

    @pytest.mark.parametrize("odd_id", [-5, PATIENT_ID_MAX + 10, "abc", None])
    def test_reads_never_fail(self, registry, odd_id):
        assert registry.get_report(odd_id) == ""
        assert registry.has_report(odd_id) is False

    def test_reads_do_not_mutate(self, registry):
        registry.get_report(1)
        registry.has_report(1)
        registry.get_record(1)
        assert registry.report_count() == 0
        assert registry.notifications() == []


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class TestNotifications:

    def test_one_notification_per_insert(self, registry):
        registry.add_report(OWNER, 1, "a")
        registry.add_report(OWNER, 2, "b")
        with pytest.raises(AlreadyExists):
            registry.add_report(OWNER, 1, "c")
        with pytest.raises(AccessDenied):
            registry.add_report(STRANGER, 3, "d")

        assert len(registry.notifications(patient_id=1)) == 1
        assert len(registry.notifications(patient_id=2)) == 1
        assert registry.notifications(patient_id=3) == []
        assert all(n.added_by == OWNER for n in registry.notifications())

    def test_notifications_newest_first(self, registry):
        for pid in (1, 2, 3):
            registry.add_report(OWNER, pid, f"r{pid}")
        assert [n.patient_id for n in registry.notifications()] == [3, 2, 1]

    def test_chain_verifies(self, registry):
        for pid in range(5):
            registry.add_report(OWNER, pid, f"r{pid}")
        assert registry.verify_notifications() is True

    def test_failed_notification_rolls_back_report(self, registry, monkeypatch):
        def boom(*args, **kwargs):
            raise sqlite3.OperationalError("log unavailable")

        monkeypatch.setattr(registry.witness, "record", boom)
        with pytest.raises(sqlite3.OperationalError):
            registry.add_report(OWNER, 11, "lost")

        assert registry.has_report(11) is False
        assert registry.report_count() == 0

        monkeypatch.undo()
        registry.add_report(OWNER, 11, "kept")
        assert registry.get_report(11) == "kept"
