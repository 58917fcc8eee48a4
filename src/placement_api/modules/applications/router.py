"""
Applications Router

API endpoints for applicants managing their own applications.

Endpoints:
- POST /applications - Create a draft application
- GET /applications - List my applications
- GET /applications/{id} - Get an application with its timeline
- PATCH /applications/{id} - Edit while draft or pending
- POST /applications/{id}/submit - Submit (draft -> pending -> submitted)
- GET /applications/{id}/status - Lightweight status for polling

Security:
- All endpoints require a valid access token
- Applications of other users are reported as not found
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_user
from placement_api.core.database import get_db
from placement_api.modules.applications import service
from placement_api.modules.applications.schemas import (
    ApplicationCreate,
    ApplicationListItem,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationStatusResponse,
    ApplicationUpdate,
)
from placement_api.modules.applications.service import ApplicationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


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


@router.post(
    "",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Application",
    description="""
Create a draft application for an open opportunity.

Documents (resume, recommendation letter, optional referral form) are
references to files already uploaded to file storage. Only PDF and DOCX
files up to 2MB are accepted.

One application per applicant and opportunity.
""",
    responses={
        404: {"description": "Opportunity not found"},
        409: {"description": "Already applied, or opportunity closed"},
    },
)
async def create_application(
    data: ApplicationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.create_application(db, user, data)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List My Applications",
)
async def list_my_applications(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    applications = await service.list_my_applications(db, user)
    return ApplicationListResponse(
        items=[ApplicationListItem.model_validate(a) for a in applications],
        total=len(applications),
        skip=0,
        limit=len(applications),
    )


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application",
    responses={404: {"description": "Application not found"}},
)
async def get_application(
    application_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.get_application(db, user, application_id)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.patch(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Update Application",
    description="Edit an application. Only allowed while it is draft or pending.",
    responses={
        404: {"description": "Application not found"},
        409: {
            "description": "Application locked",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "APPLICATION_LOCKED",
                            "message": "Application can no longer be edited (status: submitted)",
                            "current_status": "submitted",
                        }
                    }
                }
            },
        },
    },
)
async def update_application(
    application_id: UUID,
    data: ApplicationUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.update_application(db, user, application_id, data)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.post(
    "/{application_id}/submit",
    response_model=ApplicationResponse,
    summary="Submit Application",
    description="""
Submit a draft application (it becomes **pending** and awaits the
application fee). Calling submit again on a pending application
finalizes it (**submitted**) and locks further edits.
""",
    responses={
        404: {"description": "Application not found"},
        409: {"description": "Already submitted, or opportunity closed"},
    },
)
async def submit_application(
    application_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    try:
        application = await service.submit_application(db, user, application_id)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.get(
    "/{application_id}/status",
    response_model=ApplicationStatusResponse,
    summary="Get Application Status",
    responses={404: {"description": "Application not found"}},
)
async def get_application_status(
    application_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationStatusResponse:
    try:
        application = await service.get_application(db, user, application_id)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return ApplicationStatusResponse.model_validate(application)
