"""
Unit tests for the background job registry.
"""

from unittest.mock import AsyncMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from placement_api.core import scheduler
from placement_api.core.scheduler import (
    list_registered_jobs,
    pause_job,
    register_job,
    trigger_job_manually,
)


@pytest.fixture
def empty_registry():
    with (
        patch.object(scheduler, "_job_registry", {}),
        patch.object(scheduler, "_scheduler", None),
    ):
        yield


@pytest.mark.usefixtures("empty_registry")
class TestJobRegistry:
    """Jobs registered before the scheduler starts."""

    def test_register_before_start(self):
        register_job("opportunities_close_expired", AsyncMock(), IntervalTrigger(hours=1))

        assert list_registered_jobs() == [
            {"job_id": "opportunities_close_expired", "registered": True}
        ]

    @pytest.mark.asyncio
    async def test_trigger_returns_job_result(self):
        job = AsyncMock(return_value={"total_closed": 2})
        register_job("opportunities_close_expired", job, IntervalTrigger(hours=1))

        result = await trigger_job_manually("opportunities_close_expired")

        assert result["status"] == "success"
        assert result["result"] == {"total_closed": 2}
        job.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_trigger_reports_job_failure(self):
        job = AsyncMock(side_effect=RuntimeError("database unavailable"))
        register_job("notifications_dispatch_outbox", job, IntervalTrigger(seconds=30))

        result = await trigger_job_manually("notifications_dispatch_outbox")

        assert result["status"] == "error"
        assert result["error"] == "database unavailable"

    @pytest.mark.asyncio
    async def test_trigger_unknown_job(self):
        with pytest.raises(ValueError, match="not found"):
            await trigger_job_manually("missing_job")

    def test_pause_without_scheduler(self):
        register_job("opportunities_close_expired", AsyncMock(), IntervalTrigger(hours=1))

        assert pause_job("opportunities_close_expired") is False
