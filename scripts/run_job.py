"""Run a single maintenance job once, outside the scheduler.

Usage:
    python scripts/run_job.py cleanup-invitations
    python scripts/run_job.py --list
"""

import asyncio
import json
import sys

import structlog

from bazaar_jobs.config import settings
from bazaar_jobs.database import async_session, dispose_engine
from bazaar_jobs.jobs import JobNotFoundError, create_job_scheduler


async def run_job(name: str) -> bool:
    """Run ``name`` through the scheduler's guarded path and print the result."""
    scheduler = create_job_scheduler(
        async_session,
        structlog.get_logger(),
        uploads_path=settings.UPLOADS_PATH,
        karma_batch_size=settings.KARMA_BATCH_SIZE,
        karma_batch_pause=settings.KARMA_BATCH_PAUSE_SECONDS,
    )
    try:
        result = await scheduler.run_now(name)
    except JobNotFoundError:
        print(f"Error: unknown job '{name}'. Known jobs: {', '.join(scheduler.job_names)}")
        return False
    finally:
        await dispose_engine()

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return result.success


def list_jobs() -> None:
    scheduler = create_job_scheduler(async_session, structlog.get_logger())
    for status in scheduler.get_status().jobs:
        print(f"{status.name:<26} {status.schedule:<14} {status.description}")


def main() -> None:
    if len(sys.argv) != 2:
        print("Usage: python scripts/run_job.py <job-name> | --list")
        sys.exit(1)

    if sys.argv[1] == "--list":
        list_jobs()
        return

    ok = asyncio.run(run_job(sys.argv[1]))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
