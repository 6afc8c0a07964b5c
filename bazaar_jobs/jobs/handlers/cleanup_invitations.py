from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import RETENTION_RECORDS_AFFECTED
from bazaar_jobs.models.project import PendingInvitation
from bazaar_jobs.retention import STALE_INVITATIONS, stale_invitations

JOB_NAME = "cleanup-invitations"


def create_cleanup_invitations_job(session_factory: async_sessionmaker, logger) -> JobDefinition:
    """Delete invitations still unanswered after 30 days (daily, 02:00 UTC)."""
    log = logger.bind(job=JOB_NAME)

    async def handler() -> JobResult:
        cutoff = STALE_INVITATIONS.cutoff()
        async with session_factory() as db:
            result = await db.execute(
                delete(PendingInvitation).where(*stale_invitations(cutoff))
            )
            count = result.rowcount
            await db.commit()

        RETENTION_RECORDS_AFFECTED.labels(job_name=JOB_NAME, action="deleted").inc(count)
        log.info("stale_invitations_cleaned_up", deleted_count=count, cutoff=cutoff.isoformat())
        return JobResult(
            success=True,
            message=f"Deleted {count} old pending invitations",
            details={"deleted_count": count, "cutoff": cutoff.isoformat()},
        )

    return JobDefinition(
        name=JOB_NAME,
        description="Delete pending invitations older than 30 days",
        schedule="0 2 * * *",
        handler=handler,
    )
