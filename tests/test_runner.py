from unittest.mock import patch

import pytest

from bazaar_jobs.jobs.runner import run_job
from bazaar_jobs.jobs.types import JobDefinition, JobResult


def _job(handler) -> JobDefinition:
    return JobDefinition(name="sample", schedule="0 2 * * *", handler=handler)


@pytest.mark.asyncio
async def test_success_passes_through_with_duration():
    async def handler():
        return JobResult(success=True, message="ok", details={"deleted_count": 2})

    result = await run_job(_job(handler))
    assert result.success is True
    assert result.message == "ok"
    assert result.details["deleted_count"] == 2
    assert result.details["duration_ms"] >= 0


@pytest.mark.asyncio
async def test_reported_failure_is_kept():
    async def handler():
        return JobResult(success=False, message="2 items failed", details={"errors": ["a", "b"]})

    result = await run_job(_job(handler))
    assert result.success is False
    assert result.details["errors"] == ["a", "b"]


@pytest.mark.asyncio
async def test_exception_becomes_failed_result():
    async def handler():
        raise KeyError("missing column")

    with patch("bazaar_jobs.jobs.runner.sentry_sdk") as mock_sentry:
        result = await run_job(_job(handler))

    assert result.success is False
    assert "missing column" in result.message
    assert "KeyError" in result.details["error"]
    assert "Traceback" in result.details["error"]
    assert "duration_ms" in result.details
    mock_sentry.capture_exception.assert_called_once()


@pytest.mark.asyncio
async def test_exception_without_message_uses_type_name():
    async def handler():
        raise RuntimeError()

    result = await run_job(_job(handler))
    assert result.success is False
    assert result.message == "RuntimeError"


@pytest.mark.asyncio
async def test_non_result_return_is_a_failure():
    async def handler():
        return {"success": True}

    result = await run_job(_job(handler))
    assert result.success is False
    assert "expected JobResult" in result.message
    assert "TypeError" in result.details["error"]
