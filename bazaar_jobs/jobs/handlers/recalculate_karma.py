import asyncio

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import RETENTION_RECORDS_AFFECTED
from bazaar_jobs.models.user import User
from bazaar_jobs.services.karma import compute_user_karma

JOB_NAME = "recalculate-karma"
DEFAULT_BATCH_SIZE = 50
DEFAULT_BATCH_PAUSE_SECONDS = 0.1
MAX_REPORTED_ERRORS = 10


def create_recalculate_karma_job(
    session_factory: async_sessionmaker,
    logger,
    batch_size: int = DEFAULT_BATCH_SIZE,
    batch_pause: float = DEFAULT_BATCH_PAUSE_SECONDS,
) -> JobDefinition:
    """Recompute karma for every active user to correct drift (weekly).

    Users are processed in batches of ``batch_size`` with ``batch_pause``
    seconds between batches. Every user is attempted; one failure is
    recorded and does not stop the batch.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    log = logger.bind(job=JOB_NAME)

    async def handler() -> JobResult:
        async with session_factory() as db:
            rows = await db.execute(
                select(User.id, User.karma)
                .where(User.deleted_at.is_(None), User.anonymized_at.is_(None))
                .order_by(User.id)
            )
            users = rows.all()

        total = len(users)
        batches = (total + batch_size - 1) // batch_size
        success_count = failure_count = updated_count = 0
        total_karma_change = 0
        errors: list[str] = []

        for batch_no, start in enumerate(range(0, total, batch_size), start=1):
            log.debug("karma_batch_started", batch=batch_no, batches=batches)
            async with session_factory() as db:
                for user_id, old_karma in users[start:start + batch_size]:
                    try:
                        new_karma = await compute_user_karma(db, user_id)
                        change = new_karma - (old_karma or 0)
                        if change:
                            await db.execute(
                                update(User).where(User.id == user_id).values(karma=new_karma)
                            )
                            updated_count += 1
                            log.debug(
                                "karma_updated",
                                user_id=str(user_id),
                                old=old_karma,
                                new=new_karma,
                            )
                        await db.commit()
                        total_karma_change += abs(change)
                        success_count += 1
                    except Exception as exc:
                        await db.rollback()
                        failure_count += 1
                        errors.append(f"Failed to recalculate karma for user {user_id}: {exc}")
                        log.exception("karma_recalculation_failed", user_id=str(user_id))

            if start + batch_size < total:
                await asyncio.sleep(batch_pause)

        RETENTION_RECORDS_AFFECTED.labels(job_name=JOB_NAME, action="updated").inc(updated_count)
        log.info(
            "karma_recalculation_done",
            total_users=total,
            success_count=success_count,
            failure_count=failure_count,
            updated_count=updated_count,
            total_karma_change=total_karma_change,
        )
        details = {
            "total_users": total,
            "success_count": success_count,
            "failure_count": failure_count,
            "updated_count": updated_count,
            "total_karma_change": total_karma_change,
            "batch_size": batch_size,
        }
        if errors:
            details["errors"] = errors[:MAX_REPORTED_ERRORS]
        return JobResult(
            success=failure_count == 0,
            message=(
                f"Recalculated karma for {success_count}/{total} users "
                f"({failure_count} failures)"
            ),
            details=details,
        )

    return JobDefinition(
        name=JOB_NAME,
        description="Full karma recalculation for all users to fix any karma drift",
        schedule="0 5 * * 0",
        handler=handler,
    )
