from datetime import datetime, timedelta, timezone

from bazaar_jobs.jobs.history import InMemoryJobHistory
from bazaar_jobs.jobs.types import JobExecution, JobResult


def _execution(name: str, minutes: int) -> JobExecution:
    started = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)
    return JobExecution(
        job_name=name,
        started_at=started,
        finished_at=started + timedelta(seconds=5),
        trigger="cron",
        result=JobResult(success=True, message=f"run {minutes}"),
    )


def test_most_recent_first():
    history = InMemoryJobHistory()
    for minute in range(3):
        history.record(_execution("a", minute))
    assert [e.result.message for e in history.recent()] == ["run 2", "run 1", "run 0"]


def test_filter_and_limit():
    history = InMemoryJobHistory()
    history.record(_execution("a", 0))
    history.record(_execution("b", 1))
    history.record(_execution("a", 2))

    assert [e.job_name for e in history.recent("a")] == ["a", "a"]
    assert len(history.recent(limit=1)) == 1
    assert history.recent("a", limit=1)[0].result.message == "run 2"
    assert history.recent("missing") == []


def test_bounded():
    history = InMemoryJobHistory(maxlen=3)
    for minute in range(10):
        history.record(_execution("a", minute))
    entries = history.recent()
    assert len(entries) == 3
    assert entries[-1].result.message == "run 7"
