"""Scheduled maintenance jobs: data retention, cleanup and account deletion.

Usage::

    scheduler = setup_jobs(async_session, logger, uploads_path="/var/uploads")
    ...
    scheduler.stop()
"""
from collections.abc import Iterable
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from bazaar_jobs.jobs.handlers import (
    create_anonymize_audit_logs_job,
    create_cleanup_invitations_job,
    create_cleanup_orphaned_files_job,
    create_cleanup_push_tokens_job,
    create_delete_audit_logs_job,
    create_finalize_deletions_job,
    create_recalculate_karma_job,
)
from bazaar_jobs.jobs.history import InMemoryJobHistory, JobHistory
from bazaar_jobs.jobs.scheduler import JobScheduler
from bazaar_jobs.jobs.types import (
    JobConfigurationError,
    JobDefinition,
    JobNotFoundError,
    JobResult,
    JobStatistics,
    JobStatus,
)

__all__ = [
    "InMemoryJobHistory",
    "JobConfigurationError",
    "JobDefinition",
    "JobHistory",
    "JobNotFoundError",
    "JobResult",
    "JobScheduler",
    "JobStatistics",
    "JobStatus",
    "build_jobs",
    "create_job_scheduler",
    "setup_jobs",
]


def build_jobs(
    session_factory: async_sessionmaker,
    logger,
    uploads_path: str | Path = "/tmp/uploads",
    karma_batch_size: int = 50,
    karma_batch_pause: float = 0.1,
) -> list[JobDefinition]:
    return [
        create_cleanup_invitations_job(session_factory, logger),
        create_cleanup_push_tokens_job(session_factory, logger),
        create_anonymize_audit_logs_job(session_factory, logger),
        create_delete_audit_logs_job(session_factory, logger),
        create_cleanup_orphaned_files_job(session_factory, logger, uploads_path),
        create_finalize_deletions_job(session_factory, logger),
        create_recalculate_karma_job(
            session_factory,
            logger,
            batch_size=karma_batch_size,
            batch_pause=karma_batch_pause,
        ),
    ]


def setup_jobs(
    session_factory: async_sessionmaker,
    logger=None,
    uploads_path: str | Path = "/tmp/uploads",
    auto_start: bool = True,
    *,
    disabled_jobs: Iterable[str] = (),
    karma_batch_size: int = 50,
    karma_batch_pause: float = 0.1,
    history: JobHistory | None = None,
) -> JobScheduler:
    """Create a scheduler with every maintenance job registered.

    Jobs named in ``disabled_jobs`` are registered with ``enabled=False``:
    they show up in status and can be run manually but never fire on their
    own. Registration errors propagate so that the host fails to start.
    """
    logger = logger or structlog.get_logger()
    disabled = set(disabled_jobs)
    scheduler = JobScheduler(logger, history=history)

    jobs = build_jobs(
        session_factory,
        logger,
        uploads_path=uploads_path,
        karma_batch_size=karma_batch_size,
        karma_batch_pause=karma_batch_pause,
    )
    unknown = disabled - {job.name for job in jobs}
    if unknown:
        raise JobConfigurationError(f"Unknown job names in disabled list: {sorted(unknown)}")

    for job in jobs:
        if job.name in disabled:
            job.enabled = False
        scheduler.register(job)

    logger.info(
        "jobs_registered",
        count=len(jobs),
        jobs=[{"name": j.name, "schedule": j.schedule, "enabled": j.enabled} for j in jobs],
    )

    if auto_start:
        scheduler.start()

    return scheduler


def create_job_scheduler(
    session_factory: async_sessionmaker,
    logger=None,
    uploads_path: str | Path = "/tmp/uploads",
    **kwargs,
) -> JobScheduler:
    """Same as setup_jobs without starting; the caller calls start()."""
    return setup_jobs(session_factory, logger, uploads_path, auto_start=False, **kwargs)
