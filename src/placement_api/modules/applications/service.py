"""
Applications Service Layer

Business logic for the application lifecycle up to (and after) payment.

This module implements:
1. Applicant flow:
   - Create a DRAFT application (one per applicant and opportunity, only
     while the opportunity is open)
   - Edit while DRAFT or PENDING; locked afterwards
   - Submit (DRAFT -> PENDING), then optionally finalize (PENDING -> SUBMITTED)

2. Admin review flow:
   - Paginated queue with filters, detail view with timeline, dashboard counts
   - Review decisions from payment-verified onwards (under-review,
     shortlisted, accepted, rejected), each recorded in the timeline

Payment-driven transitions (payment-submitted, payment-verified, payment
rejection) live in the payments service.

Concurrency:
- Status changes are compare-and-set; a lost race surfaces as a state error
  carrying the current status
- Uniqueness of (applicant, opportunity) is enforced by the database; the
  pre-check only produces a friendlier error
- Creation holds a shared lock on the opportunity row until commit
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser
from placement_api.modules.applications import repository
from placement_api.modules.applications.helpers import (
    EDITABLE_STATUSES,
    REVIEWABLE_STATUSES,
    is_editable,
)
from placement_api.modules.applications.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
)
from placement_api.modules.applications.schemas import (
    ApplicationCreate,
    ApplicationUpdate,
    DashboardStats,
)
from placement_api.modules.notifications.models import NotificationEventType
from placement_api.modules.notifications.service import notify_applicant
from placement_api.modules.opportunities import repository as opportunities_repository
from placement_api.modules.opportunities.service import is_accepting_applications

logger = logging.getLogger(__name__)


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        details: dict | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ApplicationNotFoundError(ApplicationServiceError):
    """
    Raised when an application is not found.

    Also raised when the caller does not own the application, so that
    other users cannot learn whether it exists.
    """

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class DuplicateApplicationError(ApplicationServiceError):
    """Raised when the applicant already applied to the opportunity."""

    def __init__(self):
        super().__init__(
            message="You have already applied for this opportunity",
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class OpportunityNotFoundError(ApplicationServiceError):
    def __init__(self, opportunity_id: UUID):
        super().__init__(
            message=f"Opportunity {opportunity_id} not found",
            error_code="OPPORTUNITY_NOT_FOUND",
            status_code=404,
        )


class OpportunityClosedError(ApplicationServiceError):
    """Raised when the opportunity no longer accepts applications."""

    def __init__(self, opportunity_status: str):
        super().__init__(
            message="This opportunity is no longer accepting applications",
            error_code="OPPORTUNITY_CLOSED",
            status_code=409,
            details={"opportunity_status": opportunity_status},
        )


class ApplicationLockedError(ApplicationServiceError):
    """Raised when an edit is attempted after the application left draft/pending."""

    def __init__(self, current_status: ApplicationStatus):
        super().__init__(
            message=f"Application can no longer be edited (status: {current_status.value})",
            error_code="APPLICATION_LOCKED",
            status_code=409,
            details={"current_status": current_status.value},
        )


class InvalidApplicationStateError(ApplicationServiceError):
    """Raised when an application is not in the expected state for an operation."""

    def __init__(self, message: str, current_status: ApplicationStatus):
        super().__init__(
            message=message,
            error_code="INVALID_APPLICATION_STATE",
            status_code=409,
            details={"current_status": current_status.value},
        )


class CannotReviewApplicationError(ApplicationServiceError):
    """Raised when a review decision is not allowed from the current status."""

    def __init__(self, current_status: ApplicationStatus, decision: ApplicationStatus):
        super().__init__(
            message=(
                f"Cannot move application from '{current_status.value}' to '{decision.value}'"
            ),
            error_code="CANNOT_REVIEW_APPLICATION",
            status_code=409,
            details={"current_status": current_status.value},
        )


# ============================================
# Helpers
# ============================================


async def _get_owned_application(
    db: AsyncSession, user: CurrentUser, application_id: UUID
) -> Application:
    """Load an application the caller may see (owner or admin)."""
    application = await repository.get_by_id(db, application_id)

    if not application or (application.applicant_id != user.id and not user.is_admin):
        if application:
            logger.warning(f"User {user.id} attempted to access application {application_id}")
        raise ApplicationNotFoundError(application_id)

    return application


async def _opportunity_title(db: AsyncSession, opportunity_id: UUID) -> str:
    opportunity = await opportunities_repository.get_by_id(db, opportunity_id)
    return opportunity.title if opportunity else "your application"


async def _lock_open_opportunity(db: AsyncSession, opportunity_id: UUID) -> None:
    """
    Take a shared lock on the opportunity and check that it accepts applications.

    Raises:
        OpportunityNotFoundError: If the opportunity doesn't exist
        OpportunityClosedError: If it is closed, out of slots or past its deadline
    """
    opportunity = await opportunities_repository.get_for_application(db, opportunity_id)
    if not opportunity:
        raise OpportunityNotFoundError(opportunity_id)
    if not is_accepting_applications(opportunity):
        raise OpportunityClosedError(opportunity.status.value)


# ============================================
# Applicant Operations
# ============================================


async def create_application(
    db: AsyncSession,
    applicant: CurrentUser,
    data: ApplicationCreate,
) -> Application:
    """
    Create a DRAFT application.

    Args:
        db: Database session
        applicant: Authenticated applicant
        data: Application form

    Returns:
        The created Application with its first timeline entry

    Raises:
        DuplicateApplicationError: If the applicant already applied to the opportunity
        OpportunityNotFoundError: If the opportunity doesn't exist
        OpportunityClosedError: If the opportunity is not accepting applications
    """
    existing = await repository.get_by_applicant_and_opportunity(
        db, applicant.id, data.opportunity_id
    )
    if existing:
        logger.warning(
            f"Duplicate application attempt by {applicant.id} for opportunity {data.opportunity_id}"
        )
        raise DuplicateApplicationError()

    try:
        await _lock_open_opportunity(db, data.opportunity_id)
        application = await repository.create(db, data, applicant.id)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(
            f"Concurrent duplicate application by {applicant.id} "
            f"for opportunity {data.opportunity_id}: {e.orig}"
        )
        raise DuplicateApplicationError() from e
    except ApplicationServiceError:
        await db.rollback()
        raise

    logger.info(
        f"Application {application.id} created by {applicant.id} "
        f"for opportunity {data.opportunity_id}"
    )
    return await repository.get_by_id(db, application.id, refresh=True)


async def update_application(
    db: AsyncSession,
    applicant: CurrentUser,
    application_id: UUID,
    data: ApplicationUpdate,
) -> Application:
    """
    Apply the applicant's edits.

    Raises:
        ApplicationNotFoundError: If missing or not owned by the applicant
        ApplicationLockedError: If the status is no longer draft or pending
    """
    application = await repository.get_by_id(db, application_id)
    if not application or application.applicant_id != applicant.id:
        raise ApplicationNotFoundError(application_id)

    if not is_editable(application):
        raise ApplicationLockedError(application.status)

    updated = await repository.update_editable_fields(
        db, application_id, EDITABLE_STATUSES, data.changed_values()
    )
    if not updated:
        # Status changed between the read and the update
        await db.rollback()
        current = await repository.get_by_id(db, application_id, refresh=True)
        raise ApplicationLockedError(current.status)

    await db.commit()
    logger.info(f"Application {application_id} updated by applicant {applicant.id}")
    return await repository.get_by_id(db, application_id, refresh=True)


async def submit_application(
    db: AsyncSession,
    applicant: CurrentUser,
    application_id: UUID,
) -> Application:
    """
    Submit the application.

    DRAFT moves to PENDING (complete, awaiting the fee; still editable).
    PENDING moves to SUBMITTED (finalized; no further edits). Either way
    the opportunity must still be accepting applications.

    Raises:
        ApplicationNotFoundError: If missing or not owned by the applicant
        InvalidApplicationStateError: If the application is past pending
        OpportunityClosedError: If the opportunity closed in the meantime
    """
    application = await repository.get_by_id(db, application_id)
    if not application or application.applicant_id != applicant.id:
        raise ApplicationNotFoundError(application_id)

    current = application.status
    if current == ApplicationStatus.DRAFT:
        target, note = ApplicationStatus.PENDING, "Application submitted, awaiting payment"
    elif current == ApplicationStatus.PENDING:
        target, note = ApplicationStatus.SUBMITTED, "Application finalized"
    else:
        raise InvalidApplicationStateError(
            "Application has already been submitted", current_status=current
        )

    try:
        await _lock_open_opportunity(db, application.opportunity_id)
        applied = await repository.transition_status(
            db,
            application_id,
            current,
            target,
            actor_id=applicant.id,
            note=note,
            submitted_at=application.submitted_at or datetime.now(UTC),
        )
    except ApplicationServiceError:
        await db.rollback()
        raise

    if not applied:
        await db.rollback()
        latest = await repository.get_by_id(db, application_id, refresh=True)
        raise InvalidApplicationStateError(
            "Application changed while submitting", current_status=latest.status
        )

    await db.commit()
    logger.info(f"Application {application_id} moved {current.value} -> {target.value}")
    return await repository.get_by_id(db, application_id, refresh=True)


async def list_my_applications(db: AsyncSession, applicant: CurrentUser) -> list[Application]:
    return await repository.list_for_applicant(db, applicant.id)


async def get_application(
    db: AsyncSession,
    user: CurrentUser,
    application_id: UUID,
) -> Application:
    """
    Get an application with its timeline (owner or admin).

    Raises:
        ApplicationNotFoundError: If missing or not visible to the caller
    """
    return await _get_owned_application(db, user, application_id)


# ============================================
# Admin Operations
# ============================================


async def admin_get_applications_list(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = None,
    payment_status: ApplicationPaymentStatus | None = None,
    opportunity_id: UUID | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Application], int]:
    """Get the filtered, paginated admin queue."""
    return await repository.get_applications_for_admin(
        db,
        status=status,
        payment_status=payment_status,
        opportunity_id=opportunity_id,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=skip,
        limit=limit,
    )


async def admin_get_application_detail(db: AsyncSession, application_id: UUID) -> Application:
    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)
    return application


async def admin_get_dashboard_stats(db: AsyncSession) -> DashboardStats:
    """Counts of applications per status."""
    counts = await repository.count_by_status(db)
    by_status = {status: counts.get(status, 0) for status in ApplicationStatus}

    return DashboardStats(
        total=sum(by_status.values()),
        by_status=by_status,
        awaiting_payment_verification=by_status[ApplicationStatus.PAYMENT_SUBMITTED],
        awaiting_review=sum(by_status[s] for s in REVIEWABLE_STATUSES),
    )


async def admin_update_status(
    db: AsyncSession,
    application_id: UUID,
    admin_id: UUID,
    new_status: ApplicationStatus,
    *,
    note: str | None = None,
    reason: str | None = None,
) -> Application:
    """
    Record a review decision.

    Allowed once the payment is verified: payment-verified, under-review
    and shortlisted may move to under-review, shortlisted, accepted or
    rejected. Accepting takes one slot from the opportunity. The applicant
    is notified through the outbox.

    Args:
        db: Database session
        application_id: UUID of the application
        admin_id: UUID of the reviewing admin
        new_status: Decision
        note: Timeline note shown to the applicant
        reason: Rejection reason (required when rejecting)

    Returns:
        Updated Application with its timeline

    Raises:
        ApplicationNotFoundError: If application doesn't exist
        CannotReviewApplicationError: If the decision is not allowed from the current status
    """
    logger.info(f"Admin {admin_id} moving application {application_id} to {new_status.value}")

    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)

    current = application.status
    if current not in REVIEWABLE_STATUSES:
        logger.warning(f"Cannot review application {application_id}: status={current.value}")
        raise CannotReviewApplicationError(current, new_status)

    if new_status == ApplicationStatus.REJECTED and not (reason and reason.strip()):
        raise ApplicationServiceError(
            message="A reason is required when rejecting an application",
            error_code="REJECTION_REASON_REQUIRED",
            status_code=400,
        )

    now = datetime.now(UTC)
    fields: dict = {"reviewed_at": now, "reviewed_by": admin_id}
    timeline_note = note
    if new_status == ApplicationStatus.REJECTED:
        fields["rejection_reason"] = reason
        timeline_note = f"Rejected: {reason}" if not note else f"Rejected: {reason}. {note}"

    try:
        applied = await repository.transition_status(
            db,
            application_id,
            current,
            new_status,
            actor_id=admin_id,
            note=timeline_note,
            **fields,
        )
    except repository.InvalidStatusTransitionError as e:
        logger.warning(f"Status transition error: {e}")
        raise CannotReviewApplicationError(current, new_status) from e

    if not applied:
        await db.rollback()
        latest = await repository.get_by_id(db, application_id, refresh=True)
        raise CannotReviewApplicationError(latest.status, new_status)

    if new_status == ApplicationStatus.ACCEPTED:
        remaining = await opportunities_repository.decrement_available_slots(
            db, application.opportunity_id
        )
        if remaining is None:
            logger.warning(
                f"Accepted application {application_id} but opportunity "
                f"{application.opportunity_id} had no slots left"
            )

    notify_applicant(
        db,
        application,
        NotificationEventType.APPLICATION_STATUS_CHANGED,
        title="Application update",
        message=f"Your application is now {new_status.value}",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        status=new_status,
        note=reason if new_status == ApplicationStatus.REJECTED else note,
    )

    await db.commit()
    logger.info(f"Application {application_id} moved {current.value} -> {new_status.value}")
    return await repository.get_by_id(db, application_id, refresh=True)
