from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import RETENTION_RECORDS_AFFECTED
from bazaar_jobs.models.notification import PushToken
from bazaar_jobs.retention import INACTIVE_PUSH_TOKENS, inactive_push_tokens

JOB_NAME = "cleanup-push-tokens"


def create_cleanup_push_tokens_job(session_factory: async_sessionmaker, logger) -> JobDefinition:
    log = logger.bind(job=JOB_NAME)

    async def handler() -> JobResult:
        cutoff = INACTIVE_PUSH_TOKENS.cutoff()
        async with session_factory() as db:
            result = await db.execute(delete(PushToken).where(*inactive_push_tokens(cutoff)))
            count = result.rowcount
            await db.commit()

        RETENTION_RECORDS_AFFECTED.labels(job_name=JOB_NAME, action="deleted").inc(count)
        if count:
            log.info("inactive_push_tokens_deleted", deleted_count=count)
        return JobResult(
            success=True,
            message=f"Deleted {count} inactive push tokens",
            details={
                "deleted_count": count,
                "cutoff": cutoff.isoformat(),
                "inactive_days": INACTIVE_PUSH_TOKENS.days,
            },
        )

    return JobDefinition(
        name=JOB_NAME,
        description="Delete push tokens not used in 90 days",
        schedule="30 2 * * *",
        handler=handler,
    )
