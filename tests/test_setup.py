import pytest

from bazaar_jobs.jobs import JobConfigurationError, create_job_scheduler, setup_jobs

EXPECTED_SCHEDULES = {
    "cleanup-invitations": "0 2 * * *",
    "cleanup-push-tokens": "30 2 * * *",
    "anonymize-audit-logs": "0 3 * * *",
    "delete-audit-logs": "30 3 * * 0",
    "cleanup-orphaned-files": "0 4 * * *",
    "finalize-deletions": "30 4 * * *",
    "recalculate-karma": "0 5 * * 0",
}


def test_all_jobs_registered(logger, tmp_path):
    scheduler = setup_jobs(None, logger, uploads_path=tmp_path, auto_start=False)

    stats = scheduler.get_status()
    assert stats.total_jobs == 7
    assert stats.enabled_jobs == 7
    assert stats.scheduler_running is False
    assert {j.name: j.schedule for j in stats.jobs} == EXPECTED_SCHEDULES
    assert all(j.description for j in stats.jobs)


def test_disabled_jobs(logger):
    scheduler = create_job_scheduler(
        None, logger, disabled_jobs={"recalculate-karma", "delete-audit-logs"}
    )
    assert scheduler.get_status().enabled_jobs == 5
    assert scheduler.get_job_status("recalculate-karma").enabled is False
    assert scheduler.get_job_status("cleanup-invitations").enabled is True


def test_unknown_disabled_job(logger):
    with pytest.raises(JobConfigurationError, match="no-such-job"):
        create_job_scheduler(None, logger, disabled_jobs=["no-such-job"])


def test_invalid_karma_batch_size(logger):
    with pytest.raises(ValueError):
        create_job_scheduler(None, logger, karma_batch_size=0)


@pytest.mark.asyncio
async def test_auto_start(session_factory, logger):
    scheduler = setup_jobs(session_factory, logger, disabled_jobs=["recalculate-karma"])
    try:
        assert scheduler.running is True
        assert scheduler.get_job_status("cleanup-invitations").next_run is not None
        assert scheduler.get_job_status("recalculate-karma").next_run is None
    finally:
        scheduler.stop()
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_weekly_jobs_fire_on_sunday(session_factory, logger, tmp_path):
    scheduler = setup_jobs(session_factory, logger, uploads_path=tmp_path)
    try:
        for name in ("delete-audit-logs", "recalculate-karma"):
            # Monday is 0, Sunday is 6
            assert scheduler.get_job_status(name).next_run.weekday() == 6
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_manual_run_of_real_job(session_factory, logger):
    scheduler = create_job_scheduler(session_factory, logger)
    result = await scheduler.run_now("cleanup-invitations")
    assert result.success is True
    assert result.details["deleted_count"] == 0
    assert scheduler.get_job_status("cleanup-invitations").last_result == result
