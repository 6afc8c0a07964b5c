"""Retention policies: an age cutoff plus the predicate selecting eligible rows.

Cutoffs are computed from the instant the job starts, so re-running a job
with an unchanged cutoff reselects exactly the rows that are still eligible.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_

from bazaar_jobs.models.audit_log import AuditLog
from bazaar_jobs.models.enums import DeletionRequestStatus
from bazaar_jobs.models.notification import PushToken
from bazaar_jobs.models.privacy import DeletionRequest
from bazaar_jobs.models.project import PendingInvitation
from bazaar_jobs.models.upload import Upload

DELETION_GRACE_PERIOD = timedelta(days=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def years_before(moment: datetime, years: int) -> datetime:
    """Same calendar date ``years`` earlier; Feb 29 falls back to Feb 28."""
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        return moment.replace(year=moment.year - years, day=28)


@dataclass(frozen=True)
class RetentionPolicy:
    name: str
    days: int = 0
    years: int = 0

    def cutoff(self, now: datetime | None = None) -> datetime:
        now = now or utcnow()
        if self.years:
            now = years_before(now, self.years)
        return now - timedelta(days=self.days)


STALE_INVITATIONS = RetentionPolicy("stale-invitations", days=30)
INACTIVE_PUSH_TOKENS = RetentionPolicy("inactive-push-tokens", days=90)
ORPHANED_UPLOADS = RetentionPolicy("orphaned-uploads", days=30)
AUDIT_LOG_ANONYMIZATION = RetentionPolicy("audit-log-anonymization", years=1)
AUDIT_LOG_DELETION = RetentionPolicy("audit-log-deletion", years=3)


def stale_invitations(cutoff: datetime) -> list:
    """Invitations created before the cutoff and never accepted or declined."""
    return [
        PendingInvitation.created_at < cutoff,
        PendingInvitation.accepted_at.is_(None),
        PendingInvitation.declined_at.is_(None),
    ]


def inactive_push_tokens(cutoff: datetime) -> list:
    return [PushToken.last_used_at < cutoff]


def aged_uploads(cutoff: datetime) -> list:
    """Upload candidates; reference checks happen in the job."""
    return [Upload.created_at < cutoff]


def identifiable_audit_logs(cutoff: datetime) -> list:
    """Old audit logs that still carry a user link or network identity."""
    return [
        AuditLog.created_at < cutoff,
        or_(
            AuditLog.user_id.is_not(None),
            AuditLog.ip_address.is_not(None),
            AuditLog.user_agent.is_not(None),
        ),
    ]


def audit_logs_with_metadata(cutoff: datetime) -> list:
    return [AuditLog.created_at < cutoff, AuditLog.metadata_json.is_not(None)]


def expired_audit_logs(cutoff: datetime) -> list:
    return [AuditLog.created_at < cutoff]


def due_deletion_requests(now: datetime) -> list:
    """PENDING requests whose grace period has elapsed (scheduled_for <= now)."""
    return [
        DeletionRequest.status == DeletionRequestStatus.PENDING,
        DeletionRequest.scheduled_for <= now,
    ]
