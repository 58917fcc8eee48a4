"""
Applications Admin Router

API endpoints for administrators reviewing applications.
All endpoints require an admin access token.

Endpoints:
- GET /admin/applications - List applications with filters and pagination
- GET /admin/applications/stats - Counts per status for the dashboard
- GET /admin/applications/{id} - Application details with timeline
- POST /admin/applications/{id}/status - Record a review decision

Payment verification is handled by /admin/payments.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_admin_user
from placement_api.core.database import get_db
from placement_api.core.rate_limit import enforce_rate_limit
from placement_api.modules.applications import service
from placement_api.modules.applications.models import ApplicationPaymentStatus, ApplicationStatus
from placement_api.modules.applications.schemas import (
    ApplicationListItem,
    ApplicationListResponse,
    ApplicationResponse,
    DashboardStats,
    ReviewDecisionRequest,
)
from placement_api.modules.applications.service import ApplicationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_REVIEW = (30, 60)  # 30 review decisions per minute


def _handle_service_error(e: ApplicationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
            **e.details,
        },
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# List & Stats Endpoints
# ============================================


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List Applications",
    description="""
Get a paginated list of applications with optional filters.

**Filters:**
- `status`: Application status
- `payment_status`: Payment sub-record status (pending, verified, failed, rejected)
- `opportunity_id`: Applications for one opportunity
- `search`: Name, email, institution or M-Pesa receipt number

**Sorting:**
- `sort_by`: created_at, submitted_at or last_name. Default: created_at
- `sort_order`: asc or desc. Default: asc (oldest first for fairness)

**Access:** Admin only
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
    },
)
async def list_applications(
    status: ApplicationStatus | None = Query(None, description="Filter by application status"),
    payment_status: ApplicationPaymentStatus | None = Query(
        None, description="Filter by payment status"
    ),
    opportunity_id: UUID | None = Query(None, description="Filter by opportunity"),
    search: str | None = Query(None, min_length=1, max_length=100, description="Search term"),
    sort_by: str = Query("created_at", description="Column to sort by"),
    sort_order: str = Query("asc", description="Sort direction (asc/desc)"),
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(20, ge=1, le=100, description="Maximum records to return"),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> ApplicationListResponse:
    try:
        applications, total = await service.admin_get_applications_list(
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
        logger.info(
            f"Admin {admin.id} listed applications: total={total}, returned={len(applications)}"
        )
        return ApplicationListResponse(
            items=[ApplicationListItem.model_validate(a) for a in applications],
            total=total,
            skip=skip,
            limit=limit,
        )
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing applications: {e}")
        raise _internal_error() from e


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Get Dashboard Statistics",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
    },
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> DashboardStats:
    try:
        stats = await service.admin_get_dashboard_stats(db)
        logger.info(f"Admin {admin.id} fetched application stats")
        return stats
    except Exception as e:
        logger.exception(f"Error getting application stats: {e}")
        raise _internal_error() from e


# ============================================
# Detail & Review Endpoints
# ============================================


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application Details",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
        404: {"description": "Application not found"},
    },
)
async def get_application_detail(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> ApplicationResponse:
    try:
        application = await service.admin_get_application_detail(db, application_id)
        logger.info(f"Admin {admin.id} viewed application {application_id}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error getting application {application_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{application_id}/status",
    response_model=ApplicationResponse,
    summary="Record Review Decision",
    description="""
Move a payment-verified application through review.

**Allowed decisions:** under-review, shortlisted, accepted, rejected.
Rejecting requires a `reason`. Accepting takes one slot from the
opportunity. The applicant is notified.

**Rate Limit:** 30 decisions per minute per admin
""",
    responses={
        400: {"description": "Missing rejection reason"},
        404: {"description": "Application not found"},
        409: {
            "description": "Decision not allowed from the current status",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "CANNOT_REVIEW_APPLICATION",
                            "message": "Cannot move application from 'pending' to 'accepted'",
                            "current_status": "pending",
                        }
                    }
                }
            },
        },
        429: {"description": "Rate limit exceeded"},
    },
)
async def update_application_status(
    application_id: UUID,
    request: ReviewDecisionRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> ApplicationResponse:
    await enforce_rate_limit(f"admin:review:{admin.id}", *RATE_LIMIT_REVIEW)

    try:
        application = await service.admin_update_status(
            db,
            application_id,
            admin.id,
            request.status,
            note=request.note,
            reason=request.reason,
        )
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating status of application {application_id}: {e}")
        raise _internal_error() from e
