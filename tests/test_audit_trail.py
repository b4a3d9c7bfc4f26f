"""Tests for the background audit trail."""

import threading
from datetime import timedelta

import pytest

from conftest import audit_rows
from models.audit_log import STATUS_FAILURE, STATUS_SUCCESS
from services import audit_trail as audit_module
from services.audit_trail import AuditEvent, AuditTrail


@pytest.fixture
def audit(clock):
    trail = AuditTrail(clock=clock, max_workers=2)
    yield trail
    trail.flush()
    trail.shutdown()


class TestRecord:
    def test_record_persists_event(self, audit, clock):
        audit.record(AuditEvent(
            action="LOGIN",
            resource_type="USER",
            resource_id="42",
            actor="alice",
            ip="10.0.0.5",
            user_agent="pytest",
            details="hello",
        ))

        rows = audit_rows(audit)
        assert len(rows) == 1
        row = rows[0]
        assert (row.username, row.action, row.resource_id, row.ip_address) == ("alice", "LOGIN", "42", "10.0.0.5")
        assert row.status == STATUS_SUCCESS
        assert row.timestamp == clock.now()

    def test_actor_outside_request_is_system(self, audit):
        audit.log_success("CLEANUP", "AUDIT_LOG")

        assert audit_rows(audit)[0].username == "system"

    def test_actor_inside_request_without_user_is_anonymous(self, audit, app):
        with app.test_request_context("/", environ_base={"REMOTE_ADDR": "198.51.100.9"}):
            audit.log_failure("LOGIN_FAILED", "USER", "bob", details="nope")

        row = audit_rows(audit)[0]
        assert row.username == "anonymous"
        assert row.ip_address == "198.51.100.9"
        assert row.status == STATUS_FAILURE

    def test_long_fields_are_clipped(self, audit):
        audit.log_success("LOGIN", details="x" * 5000, actor="a" * 80)

        row = audit_rows(audit)[0]
        assert len(row.details) == 2000
        assert len(row.username) == 50


class TestFailureIsolation:
    def test_write_failure_is_counted_not_raised(self, audit, monkeypatch):
        class BrokenStorage:
            def new(self, obj):
                raise RuntimeError("database is gone")

            def save(self):
                pass

            def close(self):
                pass

        monkeypatch.setattr(audit_module, "storage", BrokenStorage())

        future = audit.log_success("LOGIN", actor="alice")

        assert future is not None
        assert future.result(timeout=5) is None
        assert audit.failed_writes == 1

    def test_record_after_shutdown_is_dropped(self, clock):
        trail = AuditTrail(clock=clock)
        trail.shutdown()

        assert trail.log_success("LOGIN", actor="alice") is None
        assert trail.failed_writes == 1


class TestConcurrency:
    def test_concurrent_records_stay_separate(self, audit):
        barrier = threading.Barrier(20)

        def worker(n):
            barrier.wait()
            audit.log_success("LOGIN", "USER", str(n), actor=f"user{n}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        rows = audit_rows(audit)
        assert len(rows) == 20
        assert {(r.username, r.resource_id) for r in rows} == {(f"user{n}", str(n)) for n in range(20)}


class TestQueries:
    def test_search_filters_and_orders_newest_first(self, audit, clock):
        audit.log_success("LOGIN", "USER", "1", actor="alice")
        clock.advance(minutes=1)
        audit.log_failure("LOGIN_FAILED", "USER", "bob", actor="anonymous")
        clock.advance(minutes=1)
        audit.log_success("LOGOUT", "USER", "1", actor="alice")

        rows = audit_rows(audit, username="alice")
        assert [r.action for r in rows] == ["LOGOUT", "LOGIN"]

        rows = audit_rows(audit, action="LOGIN_FAILED")
        assert [r.resource_id for r in rows] == ["bob"]

    def test_search_by_date_range_and_pagination(self, audit, clock):
        start = clock.now()
        for n in range(5):
            audit.log_success("LOGIN", "USER", str(n), actor="alice")
            clock.advance(hours=1)

        assert audit.flush()
        rows, total = audit.search(start=start + timedelta(hours=1), end=start + timedelta(hours=3))
        assert total == 3
        assert [r.resource_id for r in rows] == ["3", "2", "1"]

        page2, total = audit.search(page=2, limit=2)
        assert total == 5
        assert [r.resource_id for r in page2] == ["2", "1"]

    def test_delete_older_than(self, audit, clock):
        audit.log_success("LOGIN", actor="alice")
        clock.advance(days=100)
        audit.log_success("LOGIN", actor="bob")
        assert audit.flush()

        removed = audit.delete_older_than(clock.now() - timedelta(days=90))

        assert removed == 1
        assert [r.username for r in audit_rows(audit)] == ["bob"]
