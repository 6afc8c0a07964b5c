"""Job definitions, results and status projections."""
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class JobConfigurationError(ValueError):
    """Duplicate job name or malformed schedule, raised at registration."""


class JobNotFoundError(LookupError):
    def __init__(self, name: str):
        super().__init__(f'Job "{name}" not found')
        self.name = name


class JobResult(BaseModel):
    success: bool
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


JobHandler = Callable[[], Awaitable[JobResult]]


@dataclass
class JobDefinition:
    """A named unit of recurring work.

    ``schedule`` is a 5-field cron expression evaluated in UTC. Only
    ``last_run`` changes after registration.
    """

    name: str
    schedule: str
    handler: JobHandler
    description: str = ""
    enabled: bool = True
    last_run: datetime | None = None


class JobStatus(BaseModel):
    name: str
    description: str = ""
    enabled: bool
    is_running: bool
    schedule: str
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_result: JobResult | None = None


class JobStatistics(BaseModel):
    total_jobs: int
    enabled_jobs: int
    running_jobs: int
    scheduler_running: bool
    jobs: list[JobStatus]


class JobExecution(BaseModel):
    """One completed execution, as kept by the optional history log."""

    job_name: str
    started_at: datetime
    finished_at: datetime
    trigger: str
    result: JobResult
