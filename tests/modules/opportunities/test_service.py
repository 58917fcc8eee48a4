"""
Unit tests for the opportunities service layer.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from placement_api.modules.opportunities.models import (
    Opportunity,
    OpportunityStatus,
    OpportunityType,
)
from placement_api.modules.opportunities.schemas import OpportunityCreate
from placement_api.modules.opportunities.service import (
    InvalidDeadlineError,
    OpportunityNotFoundError,
    create_opportunity,
    get_opportunity,
    is_accepting_applications,
)

SERVICE = "placement_api.modules.opportunities.service"
NOW = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


def _opportunity(status=OpportunityStatus.OPEN, slots=2, deadline=NOW + timedelta(days=3)):
    opportunity = MagicMock(spec=Opportunity)
    opportunity.id = uuid4()
    opportunity.status = status
    opportunity.available_slots = slots
    opportunity.application_deadline = deadline
    return opportunity


def _create_request(**overrides) -> OpportunityCreate:
    values = {
        "company_name": "Safari Tech",
        "company_email": "hr@safaritech.co.ke",
        "title": "Backend Intern",
        "description": "Work on payment integrations",
        "opportunity_type": OpportunityType.INTERNSHIP,
        "category": "Engineering",
        "location": "Nairobi",
        "duration": "3 months",
        "available_slots": 4,
        "application_deadline": datetime.now(UTC) + timedelta(days=14),
    }
    values.update(overrides)
    return OpportunityCreate(**values)


class TestIsAcceptingApplications:
    def test_open_with_slots_before_deadline(self):
        assert is_accepting_applications(_opportunity(), now=NOW) is True

    def test_deadline_is_inclusive(self):
        assert is_accepting_applications(_opportunity(deadline=NOW), now=NOW) is True

    def test_past_deadline(self):
        opportunity = _opportunity(deadline=NOW - timedelta(seconds=1))
        assert is_accepting_applications(opportunity, now=NOW) is False

    def test_no_slots(self):
        assert is_accepting_applications(_opportunity(slots=0), now=NOW) is False

    @pytest.mark.parametrize(
        "status",
        [OpportunityStatus.DRAFT, OpportunityStatus.CLOSED, OpportunityStatus.ARCHIVED],
    )
    def test_not_open(self, status):
        assert is_accepting_applications(_opportunity(status=status), now=NOW) is False


class TestCreateOpportunity:
    @pytest.mark.asyncio
    async def test_create_open(self, mock_db):
        data = _create_request()
        posted_by = uuid4()

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.create = AsyncMock(return_value=_opportunity())

            await create_opportunity(mock_db, data, posted_by)

            mock_repo.create.assert_awaited_once_with(mock_db, data, posted_by)

    @pytest.mark.asyncio
    async def test_open_posting_needs_future_deadline(self, mock_db):
        data = _create_request(application_deadline=datetime.now(UTC) - timedelta(days=1))

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.create = AsyncMock()

            with pytest.raises(InvalidDeadlineError):
                await create_opportunity(mock_db, data, uuid4())

            mock_repo.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_naive_deadline_rejected(self, mock_db):
        data = _create_request(application_deadline=datetime(2099, 1, 1, 12, 0))

        with pytest.raises(InvalidDeadlineError):
            await create_opportunity(mock_db, data, uuid4())

    @pytest.mark.asyncio
    async def test_draft_may_have_any_deadline(self, mock_db):
        data = _create_request(
            status=OpportunityStatus.DRAFT,
            application_deadline=datetime.now(UTC) - timedelta(days=1),
        )

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.create = AsyncMock(return_value=_opportunity(status=OpportunityStatus.DRAFT))

            await create_opportunity(mock_db, data, uuid4())

            mock_repo.create.assert_awaited_once()


class TestGetOpportunity:
    @pytest.mark.asyncio
    async def test_not_found(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(OpportunityNotFoundError) as exc_info:
                await get_opportunity(mock_db, uuid4())

            assert exc_info.value.status_code == 404
