"""
Opportunities Service Layer

Posting and browsing opportunities. Closing happens automatically in
jobs.py; application creation checks openness in the applications service.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.modules.opportunities import repository
from placement_api.modules.opportunities.models import (
    Opportunity,
    OpportunityStatus,
    OpportunityType,
)
from placement_api.modules.opportunities.schemas import OpportunityCreate

logger = logging.getLogger(__name__)


class OpportunityServiceError(Exception):
    """Base exception for opportunity service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class OpportunityNotFoundError(OpportunityServiceError):
    def __init__(self, opportunity_id: UUID | None = None):
        message = (
            f"Opportunity {opportunity_id} not found" if opportunity_id else "Opportunity not found"
        )
        super().__init__(message=message, error_code="OPPORTUNITY_NOT_FOUND", status_code=404)


class InvalidDeadlineError(OpportunityServiceError):
    def __init__(self):
        super().__init__(
            message="An open opportunity needs a timezone-aware deadline in the future",
            error_code="INVALID_DEADLINE",
            status_code=400,
        )


def is_accepting_applications(opportunity: Opportunity, now: datetime | None = None) -> bool:
    """True when the opportunity is open, has slots left and its deadline is ahead."""
    now = now or datetime.now(UTC)
    return (
        opportunity.status == OpportunityStatus.OPEN
        and opportunity.available_slots > 0
        and opportunity.application_deadline >= now
    )


async def create_opportunity(
    db: AsyncSession,
    data: OpportunityCreate,
    posted_by: UUID,
) -> Opportunity:
    """
    Post a new opportunity.

    Raises:
        InvalidDeadlineError: If an OPEN posting has a naive or past deadline
    """
    if data.status == OpportunityStatus.OPEN:
        deadline = data.application_deadline
        if deadline.tzinfo is None or deadline <= datetime.now(UTC):
            raise InvalidDeadlineError()

    opportunity = await repository.create(db, data, posted_by)
    logger.info(f"Opportunity {opportunity.id} '{opportunity.title}' posted by {posted_by}")
    return opportunity


async def get_opportunity(db: AsyncSession, opportunity_id: UUID) -> Opportunity:
    """
    Raises:
        OpportunityNotFoundError: If the opportunity doesn't exist
    """
    opportunity = await repository.get_by_id(db, opportunity_id)
    if not opportunity:
        raise OpportunityNotFoundError(opportunity_id)
    return opportunity


async def list_open_opportunities(
    db: AsyncSession,
    *,
    opportunity_type: OpportunityType | None = None,
    category: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Opportunity], int]:
    return await repository.list_open(
        db,
        opportunity_type=opportunity_type,
        category=category,
        search=search,
        skip=skip,
        limit=limit,
    )
