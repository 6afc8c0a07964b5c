"""Retention policies and the record cleanup jobs built on them."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from bazaar_jobs.jobs.handlers import (
    create_anonymize_audit_logs_job,
    create_cleanup_invitations_job,
    create_cleanup_push_tokens_job,
    create_delete_audit_logs_job,
)
from bazaar_jobs.models.audit_log import AuditLog
from bazaar_jobs.models.enums import CollaboratorRole
from bazaar_jobs.models.notification import PushToken
from bazaar_jobs.models.project import PendingInvitation
from bazaar_jobs.retention import (
    AUDIT_LOG_ANONYMIZATION,
    AUDIT_LOG_DELETION,
    INACTIVE_PUSH_TOKENS,
    STALE_INVITATIONS,
    RetentionPolicy,
    years_before,
)
from bazaar_jobs.utils.log_mask import mask_email, redact_metadata
from tests.conftest import make_project, make_user, utc_ago


async def _count(session_factory, model) -> int:
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


# ============ policies ============


class TestRetentionPolicy:

    def test_day_cutoff(self):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        assert STALE_INVITATIONS.cutoff(now) == now - timedelta(days=30)
        assert INACTIVE_PUSH_TOKENS.cutoff(now) == now - timedelta(days=90)

    def test_year_cutoff_is_calendar_based(self):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        assert AUDIT_LOG_ANONYMIZATION.cutoff(now) == datetime(2025, 10, 17, 12, 0, tzinfo=timezone.utc)
        assert AUDIT_LOG_DELETION.cutoff(now) == datetime(2023, 10, 17, 12, 0, tzinfo=timezone.utc)

    def test_leap_day(self):
        leap = datetime(2028, 2, 29, tzinfo=timezone.utc)
        assert years_before(leap, 1) == datetime(2027, 2, 28, tzinfo=timezone.utc)
        assert years_before(leap, 4) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_combined(self):
        policy = RetentionPolicy("custom", days=1, years=1)
        now = datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert policy.cutoff(now) == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_defaults_to_now(self):
        cutoff = STALE_INVITATIONS.cutoff()
        expected = datetime.now(timezone.utc) - timedelta(days=30)
        assert abs((cutoff - expected).total_seconds()) < 5


class TestLogMask:

    def test_mask_email(self):
        assert mask_email("alice@example.com") == "a***@example.com"
        assert mask_email(None) == "***"
        assert mask_email("no-at-sign") == "***"

    def test_redact_metadata(self):
        assert redact_metadata({"email": "a@b.c", "projectId": "p1"}) == {"projectId": "p1"}
        assert redact_metadata({"phoneNumber": "1", "address": "x", "name": "n"}) == {}

    def test_redact_metadata_nothing_to_do(self):
        assert redact_metadata({"projectId": "p1"}) is None
        assert redact_metadata(None) is None
        assert redact_metadata(["email"]) is None


# ============ cleanup-invitations ============


@pytest.mark.asyncio
async def test_cleanup_invitations(db, session_factory, logger):
    project = make_project()
    db.add(project)

    def invitation(email, age_days, **kwargs):
        return PendingInvitation(
            id=uuid.uuid4(),
            project_id=project.id,
            email=email,
            role=CollaboratorRole.CONTRIBUTOR,
            created_at=utc_ago(days=age_days),
            **kwargs,
        )

    stale = invitation("stale@example.com", 31)
    db.add_all([
        stale,
        invitation("accepted@example.com", 45, accepted_at=utc_ago(days=40)),
        invitation("declined@example.com", 45, declined_at=utc_ago(days=40)),
        invitation("fresh@example.com", 5),
    ])
    await db.commit()

    job = create_cleanup_invitations_job(session_factory, logger)
    assert job.schedule == "0 2 * * *"

    result = await job.handler()
    assert result.success is True
    assert result.details["deleted_count"] == 1
    assert "cutoff" in result.details

    async with session_factory() as s:
        emails = set((await s.execute(select(PendingInvitation.email))).scalars())
    assert emails == {"accepted@example.com", "declined@example.com", "fresh@example.com"}

    again = await job.handler()
    assert again.details["deleted_count"] == 0


# ============ cleanup-push-tokens ============


@pytest.mark.asyncio
async def test_cleanup_push_tokens(db, session_factory, logger):
    user = make_user()
    db.add(user)
    db.add_all([
        PushToken(user_id=user.id, token="ExponentPushToken[old]", last_used_at=utc_ago(days=91)),
        PushToken(user_id=user.id, token="ExponentPushToken[older]", last_used_at=utc_ago(days=400)),
        PushToken(user_id=user.id, token="ExponentPushToken[active]", last_used_at=utc_ago(days=10)),
    ])
    await db.commit()

    job = create_cleanup_push_tokens_job(session_factory, logger)
    result = await job.handler()
    assert result.success is True
    assert result.details["deleted_count"] == 2
    assert result.details["inactive_days"] == 90

    async with session_factory() as s:
        tokens = list((await s.execute(select(PushToken.token))).scalars())
    assert tokens == ["ExponentPushToken[active]"]

    assert (await job.handler()).details["deleted_count"] == 0


# ============ audit logs ============


@pytest.fixture
def audit_rows():
    user_id = uuid.uuid4()
    return {
        "identified": AuditLog(
            action="login",
            user_id=user_id,
            ip_address="203.0.113.7",
            user_agent="Mozilla/5.0",
            metadata_json={"email": "alice@example.com", "method": "password"},
            created_at=utc_ago(days=400),
        ),
        "pii_metadata_only": AuditLog(
            action="profile_update",
            metadata_json={"name": "Alice", "field": "bio"},
            created_at=utc_ago(days=400),
        ),
        "recent": AuditLog(
            action="login",
            user_id=user_id,
            ip_address="203.0.113.7",
            user_agent="Mozilla/5.0",
            metadata_json={"email": "alice@example.com"},
            created_at=utc_ago(days=10),
        ),
        "ancient": AuditLog(
            action="signup",
            ip_address="198.51.100.1",
            created_at=utc_ago(days=4 * 366),
        ),
    }


@pytest.mark.asyncio
async def test_anonymize_audit_logs(db, session_factory, logger, audit_rows):
    db.add_all(audit_rows.values())
    await db.commit()
    ids = {key: row.id for key, row in audit_rows.items()}

    job = create_anonymize_audit_logs_job(session_factory, logger)
    result = await job.handler()

    assert result.success is True
    assert result.details["anonymized_count"] == 2
    assert result.details["metadata_sanitized"] == 2
    assert result.details["retention_years"] == 1

    async with session_factory() as s:
        identified = await s.get(AuditLog, ids["identified"])
        assert identified.user_id is None
        assert identified.ip_address is None
        assert identified.user_agent is None
        assert identified.metadata_json == {"method": "password"}
        assert identified.action == "login"

        assert (await s.get(AuditLog, ids["pii_metadata_only"])).metadata_json == {"field": "bio"}

        recent = await s.get(AuditLog, ids["recent"])
        assert recent.user_id is not None
        assert recent.ip_address == "203.0.113.7"
        assert recent.metadata_json == {"email": "alice@example.com"}

    again = await job.handler()
    assert again.details["anonymized_count"] == 0
    assert again.details["metadata_sanitized"] == 0


@pytest.mark.asyncio
async def test_delete_audit_logs(db, session_factory, logger, audit_rows):
    db.add_all(audit_rows.values())
    await db.commit()

    job = create_delete_audit_logs_job(session_factory, logger)
    assert job.schedule == "30 3 * * 0"

    result = await job.handler()
    assert result.success is True
    assert result.details["deleted_count"] == 1
    assert result.details["retention_years"] == 3
    assert await _count(session_factory, AuditLog) == 3

    assert (await job.handler()).details["deleted_count"] == 0
