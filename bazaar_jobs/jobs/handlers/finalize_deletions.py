from collections import Counter
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import DELETION_REQUESTS_FINALIZED
from bazaar_jobs.retention import DELETION_GRACE_PERIOD, utcnow
from bazaar_jobs.services.deletion import finalize_request, select_due_request_ids

JOB_NAME = "finalize-deletions"
MAX_REPORTED_ERRORS = 10


def create_finalize_deletions_job(
    session_factory: async_sessionmaker,
    logger,
    clock: Callable[[], datetime] = utcnow,
) -> JobDefinition:
    """Finalize account deletions whose grace period has elapsed (daily, 04:30 UTC)."""
    log = logger.bind(job=JOB_NAME)

    async def handler() -> JobResult:
        now = clock()
        async with session_factory() as db:
            request_ids = await select_due_request_ids(db, now)
        log.debug("deletion_requests_due", count=len(request_ids))

        outcomes: Counter[str] = Counter()
        errors: list[str] = []
        async with session_factory() as db:
            for request_id in request_ids:
                try:
                    outcome = await finalize_request(db, request_id, now)
                    await db.commit()
                except Exception as exc:
                    await db.rollback()
                    errors.append(f"Failed to process deletion request {request_id}: {exc}")
                    log.exception("deletion_finalize_failed", request_id=str(request_id))
                    continue
                outcomes[outcome] += 1
                if outcome != "skipped":
                    DELETION_REQUESTS_FINALIZED.labels(mode=outcome).inc()
                    log.info("deletion_finalized", request_id=str(request_id), outcome=outcome)

        processed = outcomes["anonymized"] + outcomes["deleted"] + outcomes["user_missing"]
        log.info(
            "deletion_finalization_done",
            total_requests=len(request_ids),
            processed_count=processed,
            anonymized_count=outcomes["anonymized"],
            deleted_count=outcomes["deleted"],
            errors=len(errors),
        )
        details = {
            "total_requests": len(request_ids),
            "processed_count": processed,
            "anonymized_count": outcomes["anonymized"],
            "deleted_count": outcomes["deleted"],
            "user_missing_count": outcomes["user_missing"],
            "skipped_count": outcomes["skipped"],
            "grace_period_days": DELETION_GRACE_PERIOD.days,
        }
        if errors:
            details["errors"] = errors[:MAX_REPORTED_ERRORS]
        return JobResult(
            success=not errors,
            message=(
                f"Processed {processed} deletion requests "
                f"({outcomes['anonymized']} anonymized, {outcomes['deleted']} deleted)"
            ),
            details=details,
        )

    return JobDefinition(
        name=JOB_NAME,
        description="Execute scheduled user deletions past 30-day grace period",
        schedule="30 4 * * *",
        handler=handler,
    )
