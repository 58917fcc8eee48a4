"""
Payments Admin Router

API endpoints for administrators verifying M-Pesa payments.
All endpoints require an admin access token.

Endpoints:
- GET /admin/payments - Review queue, filtered by status
- GET /admin/payments/stats - Counts and amounts per status
- POST /admin/payments/{id}/verify - Verify a pending payment
- POST /admin/payments/{id}/reject - Reject a pending payment (reason required)
- POST /admin/payments/{id}/flag-duplicate - Flag a pending payment as duplicate

Security:
- Admin role required on every endpoint
- Rate limiting on action endpoints
- Every action is logged with the acting admin
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_admin_user
from placement_api.core.database import get_db
from placement_api.core.rate_limit import RateLimitExceeded, check_rate_limit
from placement_api.modules.payments import service
from placement_api.modules.payments.models import PaymentStatus
from placement_api.modules.payments.schemas import (
    FlagDuplicateRequest,
    PaymentActionResponse,
    PaymentListResponse,
    PaymentResponse,
    PaymentStats,
    RejectPaymentRequest,
    VerifyPaymentRequest,
)
from placement_api.modules.payments.service import PaymentResult, PaymentServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_VERIFY = (30, 60)  # 30 verifications per minute
RATE_LIMIT_REJECT = (30, 60)  # 30 rejections per minute
RATE_LIMIT_FLAG = (30, 60)  # 30 duplicate flags per minute


async def _check_admin_rate_limit(
    admin: CurrentUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for an admin action.

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    key = f"admin:payments:{action}:{admin.id}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for admin {admin.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: PaymentServiceError) -> None:
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


def _to_action_response(result: PaymentResult) -> PaymentActionResponse:
    return PaymentActionResponse(
        payment=PaymentResponse.model_validate(result.payment),
        application_id=result.application.id,
        application_status=result.application.status,
        payment_status=result.application.payment_status,
        message=result.message,
    )


# ============================================
# Queue & Stats Endpoints
# ============================================


@router.get(
    "",
    response_model=PaymentListResponse,
    summary="List Payments",
    description="""
Payment review queue, newest first.

**Filters:**
- `status`: pending, verified, rejected or duplicate (all when omitted)

Payments carry `warnings` such as a similar payment from the same phone
number shortly before.

**Access:** Admin only
""",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
    },
)
async def list_payments(
    status: PaymentStatus | None = Query(None, description="Filter by payment status"),
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(20, ge=1, le=100, description="Maximum records to return"),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> PaymentListResponse:
    try:
        payments, total = await service.admin_list_payments(
            db, status=status, skip=skip, limit=limit
        )
        logger.info(f"Admin {admin.id} listed payments: total={total}, returned={len(payments)}")
        return PaymentListResponse(
            items=[PaymentResponse.model_validate(p) for p in payments],
            total=total,
            skip=skip,
            limit=limit,
        )
    except Exception as e:
        logger.exception(f"Error listing payments: {e}")
        raise _internal_error() from e


@router.get(
    "/stats",
    response_model=PaymentStats,
    summary="Get Payment Statistics",
    responses={
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
    },
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> PaymentStats:
    try:
        stats = await service.admin_get_payment_stats(db)
        logger.info(f"Admin {admin.id} fetched payment stats")
        return stats
    except Exception as e:
        logger.exception(f"Error getting payment stats: {e}")
        raise _internal_error() from e


# ============================================
# Action Endpoints
# ============================================


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentActionResponse,
    summary="Verify Payment",
    description="""
Verify a pending payment after checking it against the M-Pesa statement.

**State changes:**
- Payment: pending → verified
- Application: payment-submitted → payment-verified

Verifying an already verified payment is a no-op. If the transaction code
is already recorded as another application's receipt, the payment is
marked duplicate and the application rejected (`DUPLICATE_PAYMENT_CODE`).

**Rate Limit:** 30 verifications per minute per admin
""",
    responses={
        404: {"description": "Payment not found"},
        409: {
            "description": "Payment already processed or receipt collision",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "PAYMENT_ALREADY_PROCESSED",
                            "message": "Payment already rejected",
                            "current_status": "rejected",
                        }
                    }
                }
            },
        },
        429: {"description": "Rate limit exceeded"},
    },
)
async def verify_payment(
    payment_id: UUID,
    request: VerifyPaymentRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> PaymentActionResponse:
    await _check_admin_rate_limit(admin, "verify", *RATE_LIMIT_VERIFY)

    try:
        result = await service.verify_payment(
            db, payment_id, admin.id, notes=request.notes if request else None
        )
        return _to_action_response(result)
    except PaymentServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error verifying payment {payment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{payment_id}/reject",
    response_model=PaymentActionResponse,
    summary="Reject Payment",
    description="""
Reject a pending payment.

**State changes:**
- Payment: pending → rejected
- Application: payment-submitted → rejected (with the reason)

The applicant may submit a new payment afterwards.

**Rate Limit:** 30 rejections per minute per admin
""",
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment already processed"},
        422: {"description": "Missing reason"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def reject_payment(
    payment_id: UUID,
    request: RejectPaymentRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> PaymentActionResponse:
    await _check_admin_rate_limit(admin, "reject", *RATE_LIMIT_REJECT)

    try:
        result = await service.reject_payment(db, payment_id, admin.id, request.reason)
        return _to_action_response(result)
    except PaymentServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error rejecting payment {payment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{payment_id}/flag-duplicate",
    response_model=PaymentActionResponse,
    summary="Flag Duplicate Payment",
    description="""
Flag a pending payment as a duplicate.

**State changes:**
- Payment: pending → duplicate
- Application payment status: failed (the applicant can submit another code)

**Rate Limit:** 30 flags per minute per admin
""",
    responses={
        404: {"description": "Payment not found"},
        409: {"description": "Payment already processed"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def flag_duplicate(
    payment_id: UUID,
    request: FlagDuplicateRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> PaymentActionResponse:
    await _check_admin_rate_limit(admin, "flag_duplicate", *RATE_LIMIT_FLAG)

    try:
        result = await service.flag_duplicate(
            db, payment_id, admin.id, notes=request.notes if request else None
        )
        return _to_action_response(result)
    except PaymentServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error flagging payment {payment_id}: {e}")
        raise _internal_error() from e
