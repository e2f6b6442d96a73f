"""Tests for the audit policy and the audit trail."""

import csv
import io
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from authcore.core.audit_policy import AuditAction, AuditPolicy, RiskLevel, classify_risk
from authcore.core.exceptions import AuditPersistenceError, ValidationError
from authcore.models.audit_log import AuditLog
from authcore.schemas.schemas import AuditLogFilter
from authcore.services.audit_service import EXPORT_COLUMNS, AuditTrail


@pytest.mark.unit
class TestAuditPolicy:
    @pytest.mark.parametrize("action,risk", [
        (AuditAction.AUDIT_PURGE, RiskLevel.CRITICAL),
        (AuditAction.IP_BLOCKED, RiskLevel.CRITICAL),
        (AuditAction.ROLE_DELETED, RiskLevel.HIGH),
        (AuditAction.UNAUTHORIZED_ACCESS, RiskLevel.HIGH),
        (AuditAction.DELETE_REVIEW, RiskLevel.MEDIUM),
        (AuditAction.BULK_UPDATE, RiskLevel.MEDIUM),
        (AuditAction.VIEW_PRODUCTS, RiskLevel.LOW),
        (AuditAction.LOGIN, RiskLevel.LOW),
    ])
    def test_classification(self, policy, action, risk):
        assert classify_risk(policy, action) is risk

    def test_explicit_lists_beat_name_markers(self, policy):
        # DELETE_USER contains DELETE but is explicitly HIGH.
        assert classify_risk(policy, AuditAction.DELETE_USER) is RiskLevel.HIGH

    def test_build_requires_every_risk_level(self):
        with pytest.raises(ValueError):
            AuditPolicy.build("x", [], [], {"LOW": 1, "MEDIUM": 2, "HIGH": 3})


@pytest.mark.integration
class TestWrite:
    @pytest.mark.parametrize("action,days", [
        (AuditAction.VIEW_PRODUCTS, 365),
        (AuditAction.DELETE_REVIEW, 1095),
        (AuditAction.ROLE_CREATED, 2555),
        (AuditAction.AUDIT_PURGE, 3650),
    ])
    def test_retention_follows_risk(self, audit, db_session, action, days):
        entry = audit.write(db_session, action)
        assert entry.retention_date - entry.created_at == timedelta(days=days)

    def test_stamps_policy_version(self, audit, db_session, policy):
        entry = audit.write(db_session, AuditAction.LOGIN)
        assert entry.policy_version == policy.version

    def test_accepts_action_strings(self, audit, db_session):
        assert audit.write(db_session, "ROLE_ASSIGNED").action == "ROLE_ASSIGNED"

    def test_unknown_action(self, audit, db_session):
        with pytest.raises(ValidationError):
            audit.write(db_session, "TELEPORT_USER")

    def test_resolves_actor_from_users(self, audit, db_session, make_user):
        user = make_user(role="admin", email="ops@store.test")
        entry = audit.write(db_session, AuditAction.VIEW_USERS, actor_id=user.id)
        assert entry.actor_email == "ops@store.test"
        assert entry.actor_role == "admin"

    def test_classification_fixed_at_write_time(self, db_session, audit, audit_clock):
        old = audit.write(db_session, AuditAction.VIEW_DASHBOARD)

        stricter = AuditPolicy.build(
            "2025.1",
            critical_actions=["VIEW_DASHBOARD"],
            high_actions=[],
            retention_days={"LOW": 30, "MEDIUM": 60, "HIGH": 90, "CRITICAL": 120},
        )
        new = AuditTrail(policy=stricter, clock=audit_clock).write(db_session, AuditAction.VIEW_DASHBOARD)

        db_session.refresh(old)
        assert (old.risk_level, old.policy_version) == ("LOW", audit.policy.version)
        assert (new.risk_level, new.policy_version) == ("CRITICAL", "2025.1")

    def test_persistence_failure_raises(self, audit):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        with pytest.raises(AuditPersistenceError):
            audit.write(db, AuditAction.LOGIN)
        db.rollback.assert_called_once()

    def test_record_swallows_failures(self, audit):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        assert audit.record(db, AuditAction.LOGIN) is None
        assert audit.record(db, "NOT_AN_ACTION") is None

    def test_record_from_request(self, audit, db_session):
        request = MagicMock()
        request.url.path = "/api/roles"
        request.method = "POST"
        request.client.host = "203.0.113.9"
        request.headers = {"user-agent": "pytest"}

        entry = audit.record_from_request(db_session, request, AuditAction.ROLE_CREATED, status_code=201)
        assert (entry.endpoint, entry.method, entry.ip_address, entry.user_agent) == (
            "/api/roles", "POST", "203.0.113.9", "pytest",
        )


@pytest.mark.integration
class TestQueries:
    @pytest.fixture
    def entries(self, audit, db_session, audit_clock):
        specs = [
            (AuditAction.LOGIN, 1, True),
            (AuditAction.ROLE_CREATED, 1, True),
            (AuditAction.UNAUTHORIZED_ACCESS, 2, False),
            (AuditAction.UNAUTHORIZED_ACCESS, 2, False),
            (AuditAction.DELETE_PRODUCT, 1, True),
        ]
        created = []
        for action, actor, success in specs:
            audit_clock.advance(minutes=1)
            created.append(audit.write(
                db_session, action, actor_id=actor, actor_email=f"u{actor}@store.test",
                actor_role="admin", success=success, response_time_ms=100 * actor,
                resource_type="product", resource_id=actor,
            ))
        return created

    def test_newest_first_with_pagination(self, audit, db_session, entries):
        result = audit.query_logs(db_session, page=1, page_size=2)
        assert result["total"] == 5
        assert [e.id for e in result["logs"]] == [entries[4].id, entries[3].id]

    def test_filters(self, audit, db_session, entries):
        by_actor = audit.query_logs(db_session, AuditLogFilter(actor_id=2))
        assert by_actor["total"] == 2

        failures = audit.query_logs(db_session, AuditLogFilter(success=False, risk_level="HIGH"))
        assert {e.action for e in failures["logs"]} == {"UNAUTHORIZED_ACCESS"}

        window = audit.query_logs(db_session, AuditLogFilter(
            start_date=entries[1].created_at, end_date=entries[2].created_at,
        ))
        assert window["total"] == 2

    def test_user_and_resource_logs(self, audit, db_session, entries):
        assert len(audit.get_user_logs(db_session, 1)) == 3
        assert len(audit.get_resource_logs(db_session, "product", 2)) == 2
        assert len(audit.get_recent_logs(db_session, limit=3)) == 3

    def test_stats_by_action(self, audit, db_session, entries):
        stats = {row["action"]: row for row in audit.stats_by_action(db_session)}
        assert stats["UNAUTHORIZED_ACCESS"]["count"] == 2
        assert stats["UNAUTHORIZED_ACCESS"]["failure_count"] == 2
        assert stats["UNAUTHORIZED_ACCESS"]["avg_response_time_ms"] == 200.0
        assert stats["LOGIN"]["success_count"] == 1

    def test_summary(self, audit, db_session, entries):
        summary = audit.summary(db_session)
        assert summary["total"] == 5
        assert summary["unauthorized_attempts"] == 2
        assert summary["by_risk"]["HIGH"] == 4

    def test_most_active_actors(self, audit, db_session, entries):
        actors = audit.most_active_actors(db_session, limit=5)
        assert [a["actor_id"] for a in actors] == [1, 2]
        assert actors[0]["action_count"] == 3
        assert actors[1]["failure_count"] == 2

    def test_export_csv(self, audit, db_session, entries):
        rows = list(csv.reader(io.StringIO(audit.export_csv(db_session, AuditLogFilter(actor_id=2)))))
        assert rows[0] == EXPORT_COLUMNS
        assert len(rows) == 3
        assert rows[1][EXPORT_COLUMNS.index("action")] == "UNAUTHORIZED_ACCESS"

    def test_mark_reviewed(self, audit, db_session, entries):
        entry = audit.mark_reviewed(db_session, entries[2].id, reviewer_id=9)
        assert entry.reviewed is True
        assert entry.reviewed_by == 9
        assert entry.reviewed_at is not None
        assert audit.query_logs(db_session, AuditLogFilter(reviewed=True))["total"] == 1


@pytest.mark.integration
class TestRetention:
    def test_sweep_expired_respects_risk(self, audit, db_session, audit_clock):
        audit.write(db_session, AuditAction.LOGIN)           # LOW, 1 year
        audit.write(db_session, AuditAction.DELETE_REVIEW)   # MEDIUM, 3 years
        audit.write(db_session, AuditAction.AUDIT_PURGE)     # CRITICAL, 10 years

        audit_clock.advance(days=366)
        assert audit.sweep_expired(db_session) == 1

        audit_clock.advance(days=365 * 2)
        assert audit.sweep_expired(db_session) == 1
        assert [e.action for e in db_session.query(AuditLog).all()] == ["AUDIT_PURGE"]

    def test_purge_ignores_retention(self, audit, db_session, audit_clock):
        audit.write(db_session, AuditAction.AUDIT_PURGE)
        audit_clock.advance(days=40)
        audit.write(db_session, AuditAction.LOGIN)

        assert audit.purge_older_than(db_session, 30) == 1
        assert [e.action for e in db_session.query(AuditLog).all()] == ["LOGIN"]

    def test_purge_requires_positive_days(self, audit, db_session):
        with pytest.raises(ValidationError):
            audit.purge_older_than(db_session, 0)
