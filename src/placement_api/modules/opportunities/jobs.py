"""
Opportunity Background Jobs

Auto-closer: closes every open opportunity whose deadline has passed or
whose slots are used up.

Design Principles:
- Idempotent: the updates only match OPEN rows, so re-running is a no-op
- Both updates and the admin notification commit in one transaction
- Application creation holds a shared lock on the opportunity row, so a
  close never slips in between an application's openness check and its
  commit
"""

import logging
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from placement_api.core.config import settings
from placement_api.core.database import async_session_maker
from placement_api.core.scheduler import register_job
from placement_api.modules.notifications import repository as notifications
from placement_api.modules.notifications.models import NotificationEventType
from placement_api.modules.opportunities import repository

logger = logging.getLogger(__name__)

JOB_ID_CLOSE_OPPORTUNITIES = "opportunities_close_expired"


async def close_expired_opportunities() -> dict[str, Any]:
    """
    Close open opportunities that are past their deadline or out of slots.

    Returns:
        Dict with the number closed for each reason and the total
    """
    now = datetime.now(UTC)

    async with async_session_maker() as db:
        past_deadline = await repository.close_past_deadline(db, now)
        no_slots = await repository.close_without_slots(db, now)
        total = len(past_deadline) + len(no_slots)

        if total:
            notifications.enqueue(
                db,
                NotificationEventType.OPPORTUNITIES_CLOSED,
                recipient_role="admin",
                channels=[],
                title="Opportunities closed",
                message=f"{total} opportunity(ies) were closed automatically",
                payload={
                    "past_deadline": [str(i) for i in past_deadline],
                    "no_slots": [str(i) for i in no_slots],
                    "closed_at": now.isoformat(),
                },
            )

        await db.commit()

    if total:
        logger.info(
            f"Auto-closed {total} opportunities "
            f"({len(past_deadline)} past deadline, {len(no_slots)} without slots)"
        )
    else:
        logger.debug("Opportunity sweep found nothing to close")

    return {
        "closed_past_deadline": len(past_deadline),
        "closed_no_slots": len(no_slots),
        "total_closed": total,
    }


def register_opportunity_jobs() -> None:
    """Register the auto-closer with the scheduler."""
    register_job(
        job_id=JOB_ID_CLOSE_OPPORTUNITIES,
        func=close_expired_opportunities,
        trigger=IntervalTrigger(minutes=settings.opportunity_sweep_interval_minutes),
    )
    logger.info(
        f"Registered opportunity auto-closer (every {settings.opportunity_sweep_interval_minutes} min)"
    )
