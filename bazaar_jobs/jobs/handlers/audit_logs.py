"""Audit log retention: anonymize after 1 year, delete after 3 years."""
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import RETENTION_RECORDS_AFFECTED
from bazaar_jobs.models.audit_log import AuditLog
from bazaar_jobs.retention import (
    AUDIT_LOG_ANONYMIZATION,
    AUDIT_LOG_DELETION,
    audit_logs_with_metadata,
    expired_audit_logs,
    identifiable_audit_logs,
)
from bazaar_jobs.utils.log_mask import redact_metadata

ANONYMIZE_JOB_NAME = "anonymize-audit-logs"
DELETE_JOB_NAME = "delete-audit-logs"


def create_anonymize_audit_logs_job(session_factory: async_sessionmaker, logger) -> JobDefinition:
    log = logger.bind(job=ANONYMIZE_JOB_NAME)

    async def handler() -> JobResult:
        cutoff = AUDIT_LOG_ANONYMIZATION.cutoff()
        async with session_factory() as db:
            result = await db.execute(
                update(AuditLog)
                .where(*identifiable_audit_logs(cutoff))
                .values(user_id=None, ip_address=None, user_agent=None)
            )
            anonymized = result.rowcount

            # JSON metadata has to be rewritten row by row; only rows that
            # still hold a PII key are touched.
            rows = await db.execute(
                select(AuditLog.id, AuditLog.metadata_json).where(
                    *audit_logs_with_metadata(cutoff)
                )
            )
            sanitized = 0
            for log_id, metadata in rows.all():
                redacted = redact_metadata(metadata)
                if redacted is None:
                    continue
                await db.execute(
                    update(AuditLog).where(AuditLog.id == log_id).values(metadata_json=redacted)
                )
                sanitized += 1
            await db.commit()

        RETENTION_RECORDS_AFFECTED.labels(job_name=ANONYMIZE_JOB_NAME, action="anonymized").inc(
            anonymized + sanitized
        )
        log.info(
            "audit_logs_anonymized",
            anonymized_count=anonymized,
            metadata_sanitized=sanitized,
            cutoff=cutoff.isoformat(),
        )
        return JobResult(
            success=True,
            message=f"Anonymized {anonymized} audit logs, sanitized metadata in {sanitized} logs",
            details={
                "anonymized_count": anonymized,
                "metadata_sanitized": sanitized,
                "cutoff": cutoff.isoformat(),
                "retention_years": AUDIT_LOG_ANONYMIZATION.years,
            },
        )

    return JobDefinition(
        name=ANONYMIZE_JOB_NAME,
        description="Anonymize audit logs older than 1 year",
        schedule="0 3 * * *",
        handler=handler,
    )


def create_delete_audit_logs_job(session_factory: async_sessionmaker, logger) -> JobDefinition:
    log = logger.bind(job=DELETE_JOB_NAME)

    async def handler() -> JobResult:
        cutoff = AUDIT_LOG_DELETION.cutoff()
        async with session_factory() as db:
            result = await db.execute(delete(AuditLog).where(*expired_audit_logs(cutoff)))
            count = result.rowcount
            await db.commit()

        RETENTION_RECORDS_AFFECTED.labels(job_name=DELETE_JOB_NAME, action="deleted").inc(count)
        log.info("audit_logs_deleted", deleted_count=count, cutoff=cutoff.isoformat())
        return JobResult(
            success=True,
            message=f"Deleted {count} audit logs older than 3 years",
            details={
                "deleted_count": count,
                "cutoff": cutoff.isoformat(),
                "retention_years": AUDIT_LOG_DELETION.years,
            },
        )

    return JobDefinition(
        name=DELETE_JOB_NAME,
        description="Delete audit logs older than 3 years",
        schedule="30 3 * * 0",
        handler=handler,
    )
