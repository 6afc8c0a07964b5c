import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from bazaar_jobs.dependencies import get_job_scheduler, require_admin_key
from bazaar_jobs.jobs import JobNotFoundError, JobResult, JobScheduler, JobStatistics, JobStatus
from bazaar_jobs.jobs.types import JobExecution

logger = structlog.get_logger()
router = APIRouter(prefix="/admin/jobs", tags=["admin"], dependencies=[Depends(require_admin_key)])


@router.get("", response_model=JobStatistics)
async def list_jobs(scheduler: JobScheduler = Depends(get_job_scheduler)):
    """Status snapshot of every registered job."""
    return scheduler.get_status()


@router.get("/{job_name}", response_model=JobStatus)
async def get_job(job_name: str, scheduler: JobScheduler = Depends(get_job_scheduler)):
    job_status = scheduler.get_job_status(job_name)
    if job_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job_status


@router.get("/{job_name}/history", response_model=list[JobExecution])
async def get_job_history(
    job_name: str,
    limit: int = Query(20, ge=1, le=200),
    scheduler: JobScheduler = Depends(get_job_scheduler),
):
    if scheduler.get_job_status(job_name) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return scheduler.history(job_name, limit)


@router.post("/{job_name}/run", response_model=JobResult)
async def run_job_now(job_name: str, scheduler: JobScheduler = Depends(get_job_scheduler)):
    """Run a job immediately, bypassing its schedule and enabled flag.

    Responds 409 with the rejected result when the job is already running.
    """
    try:
        result = await scheduler.run_now(job_name)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    logger.info("admin_job_run", job_name=job_name, success=result.success)
    if result.details.get("reason") == "already_running":
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=result.model_dump(mode="json"),
        )
    return result
