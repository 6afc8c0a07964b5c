import secrets

import structlog
from fastapi import Header, HTTPException, Request, status

from bazaar_jobs.config import settings
from bazaar_jobs.jobs import JobScheduler

logger = structlog.get_logger()


async def require_admin_key(x_admin_key: str = Header(default="")) -> None:
    """Guard for the job administration endpoints.

    User authentication lives in the API service; here a shared key sent in
    X-Admin-Key stands in for the elevated-role check.
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job administration is not configured",
        )
    if not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("admin_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key",
        )


def get_job_scheduler(request: Request) -> JobScheduler:
    scheduler = getattr(request.app.state, "job_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job scheduler is not available",
        )
    return scheduler
