import time
import traceback

import sentry_sdk
import structlog

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import SCHEDULER_JOB_DURATION

logger = structlog.get_logger()


async def run_job(job: JobDefinition, log=None) -> JobResult:
    """Invoke ``job.handler`` and always return a JobResult.

    Any exception raised by the handler (including programming errors) is
    converted into a failed result carrying the traceback. Execution time is
    added to ``details["duration_ms"]``.
    """
    log = (log or logger).bind(job=job.name)
    start = time.monotonic()
    try:
        result = await job.handler()
        if not isinstance(result, JobResult):
            raise TypeError(
                f"handler returned {type(result).__name__}, expected JobResult"
            )
    except Exception as exc:
        sentry_sdk.capture_exception(exc)
        log.exception("job_handler_raised", error_type=type(exc).__name__)
        result = JobResult(
            success=False,
            message=str(exc) or type(exc).__name__,
            details={"error": traceback.format_exc()},
        )

    elapsed = time.monotonic() - start
    SCHEDULER_JOB_DURATION.labels(job_name=job.name).observe(elapsed)
    result.details["duration_ms"] = round(elapsed * 1000, 1)
    return result
