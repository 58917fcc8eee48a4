"""
Unit tests for the opportunity auto-closer job.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from placement_api.modules.notifications.models import NotificationEventType
from placement_api.modules.opportunities.jobs import close_expired_opportunities

JOBS = "placement_api.modules.opportunities.jobs"


def _session_maker(db):
    maker = MagicMock()
    maker.return_value.__aenter__.return_value = db
    maker.return_value.__aexit__.return_value = False
    return maker


class TestCloseExpiredOpportunities:
    @pytest.mark.asyncio
    async def test_closes_and_notifies_admins(self, mock_db):
        past_deadline = [uuid4(), uuid4()]
        no_slots = [uuid4()]

        with (
            patch(f"{JOBS}.async_session_maker", _session_maker(mock_db)),
            patch(f"{JOBS}.repository") as mock_repo,
            patch(f"{JOBS}.notifications") as mock_notifications,
        ):
            mock_repo.close_past_deadline = AsyncMock(return_value=past_deadline)
            mock_repo.close_without_slots = AsyncMock(return_value=no_slots)

            result = await close_expired_opportunities()

            assert result == {
                "closed_past_deadline": 2,
                "closed_no_slots": 1,
                "total_closed": 3,
            }

            mock_notifications.enqueue.assert_called_once()
            args, kwargs = mock_notifications.enqueue.call_args
            assert args[1] == NotificationEventType.OPPORTUNITIES_CLOSED
            assert kwargs["recipient_role"] == "admin"
            assert kwargs["payload"]["past_deadline"] == [str(i) for i in past_deadline]
            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_close(self, mock_db):
        with (
            patch(f"{JOBS}.async_session_maker", _session_maker(mock_db)),
            patch(f"{JOBS}.repository") as mock_repo,
            patch(f"{JOBS}.notifications") as mock_notifications,
        ):
            mock_repo.close_past_deadline = AsyncMock(return_value=[])
            mock_repo.close_without_slots = AsyncMock(return_value=[])

            result = await close_expired_opportunities()

            assert result["total_closed"] == 0
            mock_notifications.enqueue.assert_not_called()
