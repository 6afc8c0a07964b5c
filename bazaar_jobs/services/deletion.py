"""Account deletion with a 30-day grace period.

A request moves PENDING -> CANCELLED (user action) or PENDING -> COMPLETED
(finalize job, once the grace period has elapsed). Both outcomes are
terminal and requests are never deleted.

A user can hold at most one PENDING request. Asking again while one is
pending raises DeletionConflictError; the existing grace timer is kept.
"""
import math
import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bazaar_jobs.models.audit_log import AuditLog
from bazaar_jobs.models.enums import DeletionRequestStatus
from bazaar_jobs.models.notification import Notification, PushToken
from bazaar_jobs.models.privacy import ConsentRecord, DeletionRequest
from bazaar_jobs.models.project import Collaborator, Idea, Project, Upvote
from bazaar_jobs.models.upload import Upload
from bazaar_jobs.models.user import RefreshToken, User
from bazaar_jobs.retention import DELETION_GRACE_PERIOD, due_deletion_requests, utcnow
from bazaar_jobs.schemas.privacy import DeletionStatus
from bazaar_jobs.utils.log_mask import mask_email

logger = structlog.get_logger()

DELETED_USER_NAME = "[Deleted User]"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    DeletionRequestStatus.PENDING.value: {
        DeletionRequestStatus.CANCELLED.value,
        DeletionRequestStatus.COMPLETED.value,
    },
    DeletionRequestStatus.CANCELLED.value: set(),
    DeletionRequestStatus.COMPLETED.value: set(),
}


class DeletionWorkflowError(Exception):
    pass


class UserNotFoundError(DeletionWorkflowError):
    pass


class DeletionRequestNotFoundError(DeletionWorkflowError):
    pass


class DeletionConflictError(DeletionWorkflowError):
    def __init__(self, existing: DeletionRequest | None = None):
        super().__init__("A deletion request is already pending for this user")
        self.existing = existing


class InvalidDeletionTransitionError(DeletionWorkflowError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move deletion request from {current} to {target}")
        self.current = current
        self.target = target


def _status_value(status) -> str:
    return status.value if isinstance(status, DeletionRequestStatus) else str(status)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def transition(
    request: DeletionRequest,
    target: DeletionRequestStatus,
    now: datetime | None = None,
) -> None:
    """Apply a state change, enforcing the PENDING-only rule and the grace period."""
    now = now or utcnow()
    current = _status_value(request.status)
    if target.value not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidDeletionTransitionError(current, target.value)

    if target is DeletionRequestStatus.COMPLETED:
        if now < _as_utc(request.scheduled_for):
            raise InvalidDeletionTransitionError(current, target.value)
        request.completed_at = now
    elif target is DeletionRequestStatus.CANCELLED:
        request.cancelled_at = now
    request.status = target


async def find_pending_request(db: AsyncSession, user_id: uuid.UUID) -> DeletionRequest | None:
    result = await db.execute(
        select(DeletionRequest).where(
            DeletionRequest.user_id == user_id,
            DeletionRequest.status == DeletionRequestStatus.PENDING,
        )
    )
    return result.scalar_one_or_none()


async def find_latest_request(db: AsyncSession, user_id: uuid.UUID) -> DeletionRequest | None:
    result = await db.execute(
        select(DeletionRequest)
        .where(DeletionRequest.user_id == user_id)
        .order_by(DeletionRequest.requested_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def request_deletion(
    db: AsyncSession,
    user_id: uuid.UUID,
    anonymize_contributions: bool = True,
    now: datetime | None = None,
) -> DeletionRequest:
    """Open a PENDING request scheduled ``DELETION_GRACE_PERIOD`` from now.

    The caller owns the transaction and commits. Losing a race against a
    concurrent request rolls back only this insert; other pending work in
    the caller's session is kept.
    """
    now = now or utcnow()
    user = await db.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise UserNotFoundError(f"User {user_id} not found")

    existing = await find_pending_request(db, user_id)
    if existing is not None:
        logger.info("deletion_request_conflict", user_id=str(user_id), request_id=str(existing.id))
        raise DeletionConflictError(existing)

    request = DeletionRequest(
        user_id=user_id,
        status=DeletionRequestStatus.PENDING,
        anonymize_contributions=anonymize_contributions,
        requested_at=now,
        scheduled_for=now + DELETION_GRACE_PERIOD,
    )
    try:
        async with db.begin_nested():
            db.add(request)
            user.deletion_requested_at = now
    except IntegrityError:
        # Lost a race against a concurrent request for the same user
        raise DeletionConflictError(await find_pending_request(db, user_id))

    logger.info(
        "deletion_requested",
        user_id=str(user_id),
        email=mask_email(user.email),
        scheduled_for=request.scheduled_for.isoformat(),
        anonymize_contributions=anonymize_contributions,
    )
    return request


async def cancel_deletion(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> DeletionRequest:
    """Cancel the user's most recent request; only a PENDING one can be cancelled."""
    request = await find_latest_request(db, user_id)
    if request is None:
        raise DeletionRequestNotFoundError(f"No deletion request for user {user_id}")

    transition(request, DeletionRequestStatus.CANCELLED, now)
    await db.execute(
        update(User).where(User.id == user_id).values(deletion_requested_at=None)
    )
    await db.flush()
    logger.info("deletion_cancelled", user_id=str(user_id), request_id=str(request.id))
    return request


async def get_deletion_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> DeletionStatus:
    request = await find_pending_request(db, user_id)
    if request is None:
        return DeletionStatus(has_pending_deletion=False)

    now = now or utcnow()
    scheduled_for = _as_utc(request.scheduled_for)
    remaining = (scheduled_for - now) / timedelta(days=1)
    return DeletionStatus(
        has_pending_deletion=True,
        requested_at=_as_utc(request.requested_at),
        scheduled_for=scheduled_for,
        days_remaining=max(0, math.ceil(remaining)),
        anonymize_contributions=request.anonymize_contributions,
    )


async def select_due_request_ids(db: AsyncSession, now: datetime) -> list[uuid.UUID]:
    result = await db.execute(
        select(DeletionRequest.id)
        .where(*due_deletion_requests(now))
        .order_by(DeletionRequest.scheduled_for)
    )
    return list(result.scalars().all())


async def _strip_personal_records(db: AsyncSession, user_id: uuid.UUID) -> None:
    await db.execute(
        update(AuditLog).where(AuditLog.user_id == user_id).values(user_id=None)
    )
    await db.execute(delete(PushToken).where(PushToken.user_id == user_id))
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    await db.execute(delete(ConsentRecord).where(ConsentRecord.user_id == user_id))


async def anonymize_user(db: AsyncSession, user_id: uuid.UUID, now: datetime) -> None:
    """Replace identifying fields but keep projects, ideas and upvotes."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            email=f"deleted-{user_id}@deleted.local",
            name=DELETED_USER_NAME,
            bio=None,
            avatar_url=None,
            anonymized_at=now,
            deleted_at=now,
            deletion_requested_at=None,
            show_email_on_profile=False,
            include_in_search=False,
            show_activity_publicly=False,
        )
    )
    await _strip_personal_records(db, user_id)


async def purge_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Delete the user and everything they own; shared content is disassociated."""
    upvoted = await db.execute(select(Upvote.project_id).where(Upvote.user_id == user_id))
    project_ids = list(upvoted.scalars().all())
    if project_ids:
        await db.execute(
            update(Project)
            .where(Project.id.in_(project_ids), Project.upvote_count > 0)
            .values(upvote_count=Project.upvote_count - 1)
        )
    await db.execute(delete(Upvote).where(Upvote.user_id == user_id))
    await db.execute(delete(Collaborator).where(Collaborator.user_id == user_id))
    await db.execute(delete(Notification).where(Notification.user_id == user_id))
    await db.execute(update(Idea).where(Idea.author_id == user_id).values(author_id=None))
    await db.execute(update(Upload).where(Upload.user_id == user_id).values(user_id=None))
    await _strip_personal_records(db, user_id)
    await db.execute(delete(User).where(User.id == user_id))


async def finalize_request(db: AsyncSession, request_id: uuid.UUID, now: datetime) -> str:
    """Finalize one due request and mark it COMPLETED.

    Returns "anonymized", "deleted", "user_missing", or "skipped" when the
    request is no longer due (cancelled since it was selected).
    """
    result = await db.execute(
        select(DeletionRequest)
        .where(DeletionRequest.id == request_id, *due_deletion_requests(now))
        .with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        return "skipped"

    user = await db.get(User, request.user_id)
    if user is None:
        outcome = "user_missing"
    elif request.anonymize_contributions:
        await anonymize_user(db, request.user_id, now)
        outcome = "anonymized"
    else:
        await purge_user(db, request.user_id)
        outcome = "deleted"

    transition(request, DeletionRequestStatus.COMPLETED, now)
    await db.flush()
    return outcome
