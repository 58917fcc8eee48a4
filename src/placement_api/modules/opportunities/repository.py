"""
Opportunities Repository

Database operations for opportunity postings, including the bulk updates
used by the auto-closer sweep.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Opportunity, OpportunityStatus, OpportunityType
from .schemas import OpportunityCreate


async def create(db: AsyncSession, data: OpportunityCreate, posted_by: UUID) -> Opportunity:
    """Create a new opportunity."""
    opportunity = Opportunity(
        company_name=data.company_name,
        company_email=data.company_email,
        company_phone=data.company_phone,
        title=data.title,
        description=data.description,
        opportunity_type=data.opportunity_type,
        category=data.category,
        location=data.location,
        duration=data.duration,
        requirements=data.requirements,
        benefits=data.benefits,
        available_slots=data.available_slots,
        application_deadline=data.application_deadline,
        status=data.status,
        posted_by=posted_by,
    )

    db.add(opportunity)
    await db.commit()
    await db.refresh(opportunity)

    return opportunity


async def get_by_id(db: AsyncSession, id: UUID) -> Opportunity | None:
    """Get opportunity by ID."""
    return await db.get(Opportunity, id)


async def get_for_application(db: AsyncSession, id: UUID) -> Opportunity | None:
    """
    Load an opportunity with a shared row lock (SELECT ... FOR SHARE).

    Held until the caller's transaction ends, so the auto-closer's UPDATE
    waits for an in-flight application insert to commit, and an insert
    that starts after the closer committed sees the closed status.
    """
    result = await db.execute(
        select(Opportunity).where(Opportunity.id == id).with_for_update(read=True)
    )
    return result.scalar_one_or_none()


async def list_open(
    db: AsyncSession,
    *,
    opportunity_type: OpportunityType | None = None,
    category: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Opportunity], int]:
    """
    List open opportunities, soonest deadline first.

    Returns:
        Tuple of (opportunities, total count matching filters)
    """
    query = select(Opportunity).where(Opportunity.status == OpportunityStatus.OPEN)

    if opportunity_type:
        query = query.where(Opportunity.opportunity_type == opportunity_type)

    if category:
        query = query.where(Opportunity.category == category)

    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Opportunity.title.ilike(pattern),
                Opportunity.company_name.ilike(pattern),
                Opportunity.location.ilike(pattern),
            )
        )

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    result = await db.execute(
        query.order_by(Opportunity.application_deadline.asc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


async def decrement_available_slots(db: AsyncSession, id: UUID) -> int | None:
    """
    Take one slot from an opportunity, never going below zero.

    Does not commit; runs inside the caller's transaction.

    Returns:
        Remaining slots, or None if there was no slot to take
    """
    result = await db.execute(
        update(Opportunity)
        .where(Opportunity.id == id, Opportunity.available_slots > 0)
        .values(available_slots=Opportunity.available_slots - 1)
        .returning(Opportunity.available_slots)
    )
    return result.scalar_one_or_none()


# ============================================
# Background Job Repository Methods
# ============================================


async def close_past_deadline(db: AsyncSession, now: datetime) -> list[UUID]:
    """Close every open opportunity whose deadline has passed. Does not commit."""
    result = await db.execute(
        update(Opportunity)
        .where(
            Opportunity.status == OpportunityStatus.OPEN,
            Opportunity.application_deadline < now,
        )
        .values(status=OpportunityStatus.CLOSED, closed_at=now)
        .returning(Opportunity.id)
    )
    return list(result.scalars().all())


async def close_without_slots(db: AsyncSession, now: datetime) -> list[UUID]:
    """Close every open opportunity with no available slots. Does not commit."""
    result = await db.execute(
        update(Opportunity)
        .where(
            Opportunity.status == OpportunityStatus.OPEN,
            Opportunity.available_slots <= 0,
        )
        .values(status=OpportunityStatus.CLOSED, closed_at=now)
        .returning(Opportunity.id)
    )
    return list(result.scalars().all())
