"""In-process job scheduler for recurring maintenance work.

Each enabled job gets an APScheduler cron trigger evaluated in UTC. Triggered
and manual executions go through the same guarded path: a job name that is
already running is rejected instead of executed a second time, so a slow run
never overlaps with its own next firing.
"""

import asyncio
from datetime import datetime, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from bazaar_jobs.jobs.history import JobHistory
from bazaar_jobs.jobs.runner import run_job
from bazaar_jobs.jobs.types import (
    JobConfigurationError,
    JobDefinition,
    JobExecution,
    JobNotFoundError,
    JobResult,
    JobStatistics,
    JobStatus,
)
from bazaar_jobs.metrics import SCHEDULER_JOB_RUNS

ALREADY_RUNNING_MESSAGE = "Job is already running"

# Standard cron numbers weekdays from 0=Sunday (7 is Sunday too); APScheduler
# numbers them from 0=Monday, so the field is passed on as weekday names.
CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _weekday_number(token: str) -> int:
    token = token.strip().lower()
    if token in CRON_WEEKDAYS:
        return CRON_WEEKDAYS.index(token)
    if not token.isdigit() or int(token) > 7:
        raise ValueError(f"invalid day of week: {token!r}")
    return int(token) % 7


def cron_day_of_week(field: str) -> str:
    """Translate a crontab day-of-week field into APScheduler weekday names.

    Examples:
        "0"     -> "sun"
        "7"     -> "sun"
        "1-5"   -> "mon,tue,wed,thu,fri"
        "*/2"   -> "sun,tue,thu,sat"
        "*"     -> "*"
    """
    if field == "*":
        return field

    days: list[int] = []
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in day of week: {part!r}")
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            start, end = base.split("-", 1)
            first = _weekday_number(start)
            # 7 closes a range on Sunday ("5-7" is Friday to Sunday)
            last = 7 if end.strip() == "7" else _weekday_number(end)
            if first > last:
                raise ValueError(f"invalid day of week range: {part!r}")
        else:
            first = _weekday_number(base)
            last = 6 if step_text else first
        for day in range(first, last + 1, step):
            if day % 7 not in days:
                days.append(day % 7)
    return ",".join(CRON_WEEKDAYS[day] for day in days)


def parse_schedule(expression: str) -> CronTrigger:
    """Build a UTC cron trigger from a 5-field crontab expression.

    Day-of-week follows standard cron numbering (0 and 7 are Sunday).
    Raises ValueError for a wrong number of fields or out-of-range values.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValueError("empty cron expression")
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5")
    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=cron_day_of_week(day_of_week),
        timezone="UTC",
    )


class JobScheduler:
    def __init__(self, logger=None, history: JobHistory | None = None):
        self._logger = (logger or structlog.get_logger()).bind(scope="job_scheduler")
        self._history = history
        self._jobs: dict[str, JobDefinition] = {}
        self._triggers: dict[str, CronTrigger] = {}
        self._running: set[str] = set()
        self._last_results: dict[str, JobResult] = {}
        # Tasks spawned by cron firings; the handler runs outside APScheduler's
        # executor so that stop() never cancels an in-flight run.
        self._tasks: set[asyncio.Task] = set()
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        # APScheduler 3.11 defers shutdown to the next loop iteration, so its
        # own running state lags behind stop().
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def register(self, job: JobDefinition) -> None:
        """Add a job to the registry.

        Raises JobConfigurationError on a duplicate name or an invalid
        schedule; the job is not registered in either case.
        """
        if job.name in self._jobs:
            raise JobConfigurationError(f'Job with name "{job.name}" is already registered')
        try:
            trigger = parse_schedule(job.schedule)
        except ValueError as exc:
            raise JobConfigurationError(
                f'Invalid cron expression for job "{job.name}": {job.schedule!r} ({exc})'
            ) from exc

        self._jobs[job.name] = job
        self._triggers[job.name] = trigger
        self._logger.info(
            "job_registered",
            job_name=job.name,
            schedule=job.schedule,
            enabled=job.enabled,
        )

    def start(self) -> None:
        """Install one recurring trigger per enabled job and begin firing.

        Must be called from within a running event loop.
        """
        if self._started:
            self._logger.warning("job_scheduler_already_started")
            return

        self._logger.info("job_scheduler_starting")
        for name, job in self._jobs.items():
            if not job.enabled:
                self._logger.debug("job_skipped_disabled", job_name=name)
                continue
            self._scheduler.add_job(
                self._fire,
                trigger=self._triggers[name],
                args=[name],
                id=name,
                name=name,
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=3600,
            )
            self._logger.info("job_scheduled", job_name=name, schedule=job.schedule)

        self._scheduler.start()
        self._started = True
        self._logger.info("job_scheduler_started", active_jobs=len(self._scheduler.get_jobs()))

    def stop(self) -> None:
        """Cancel all recurring triggers.

        Runs already in progress are left to finish; only new firings stop.
        """
        if not self._started:
            return
        self._logger.info("job_scheduler_stopping")
        self._scheduler.remove_all_jobs()
        self._scheduler.shutdown(wait=False)
        self._started = False
        # The old instance finishes shutting down on the next loop iteration;
        # a fresh one lets start() follow stop() straight away.
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._logger.info("job_scheduler_stopped", in_flight=len(self._tasks))

    async def wait_for_running(self) -> None:
        """Wait for runs started by cron firings to finish (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_now(self, name: str) -> JobResult:
        """Execute ``name`` immediately, ignoring its schedule and enabled flag."""
        if name not in self._jobs:
            raise JobNotFoundError(name)
        self._logger.info("job_manual_trigger", job_name=name)
        return await self._execute(name, trigger="manual")

    def get_status(self) -> JobStatistics:
        statuses = [self._status_for(job) for job in self._jobs.values()]
        return JobStatistics(
            total_jobs=len(self._jobs),
            enabled_jobs=sum(1 for j in self._jobs.values() if j.enabled),
            running_jobs=len(self._running),
            scheduler_running=self._started,
            jobs=statuses,
        )

    def get_job_status(self, name: str) -> JobStatus | None:
        job = self._jobs.get(name)
        if job is None:
            return None
        return self._status_for(job)

    def history(self, name: str | None = None, limit: int | None = None) -> list[JobExecution]:
        if self._history is None:
            return []
        return self._history.recent(name, limit)

    def _status_for(self, job: JobDefinition) -> JobStatus:
        next_run = None
        scheduled = self._scheduler.get_job(job.name) if self._started else None
        if scheduled is not None:
            next_run = getattr(scheduled, "next_run_time", None)
        return JobStatus(
            name=job.name,
            description=job.description,
            enabled=job.enabled,
            is_running=job.name in self._running,
            schedule=job.schedule,
            last_run=job.last_run,
            next_run=next_run,
            last_result=self._last_results.get(job.name),
        )

    async def _fire(self, name: str) -> None:
        task = asyncio.create_task(self._execute(name, trigger="cron"))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, name: str, trigger: str) -> JobResult:
        job = self._jobs.get(name)
        if job is None:
            return JobResult(success=False, message=f'Job "{name}" not found')

        if name in self._running:
            self._logger.warning("job_already_running", job_name=name, trigger=trigger)
            SCHEDULER_JOB_RUNS.labels(job_name=name, status="skipped").inc()
            return JobResult(
                success=False,
                message=ALREADY_RUNNING_MESSAGE,
                details={"reason": "already_running"},
            )

        self._running.add(name)
        started_at = datetime.now(timezone.utc)
        self._logger.info("job_started", job_name=name, trigger=trigger)
        try:
            result = await run_job(job, self._logger)
            finished_at = datetime.now(timezone.utc)
            job.last_run = finished_at
            self._last_results[name] = result

            if result.success:
                SCHEDULER_JOB_RUNS.labels(job_name=name, status="success").inc()
                self._logger.info(
                    "job_completed",
                    job_name=name,
                    trigger=trigger,
                    message=result.message,
                    details=result.details,
                )
            else:
                SCHEDULER_JOB_RUNS.labels(job_name=name, status="failure").inc()
                self._logger.warning(
                    "job_completed_with_errors",
                    job_name=name,
                    trigger=trigger,
                    message=result.message,
                    details=result.details,
                )

            if self._history is not None:
                self._history.record(
                    JobExecution(
                        job_name=name,
                        started_at=started_at,
                        finished_at=finished_at,
                        trigger=trigger,
                        result=result,
                    )
                )
            return result
        finally:
            self._running.discard(name)
