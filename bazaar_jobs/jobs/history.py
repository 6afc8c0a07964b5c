from collections import deque
from typing import Protocol

from bazaar_jobs.jobs.types import JobExecution


class JobHistory(Protocol):
    """Append-only log of completed executions, kept apart from the status snapshot."""

    def record(self, execution: JobExecution) -> None: ...

    def recent(self, job_name: str | None = None, limit: int | None = None) -> list[JobExecution]: ...


class InMemoryJobHistory:
    """Bounded in-process history; the oldest entries are dropped first."""

    def __init__(self, maxlen: int = 50):
        self._entries: deque[JobExecution] = deque(maxlen=maxlen)

    def record(self, execution: JobExecution) -> None:
        self._entries.append(execution)

    def recent(self, job_name: str | None = None, limit: int | None = None) -> list[JobExecution]:
        """Most recent first."""
        entries = [
            e for e in reversed(self._entries)
            if job_name is None or e.job_name == job_name
        ]
        return entries[:limit] if limit is not None else entries
