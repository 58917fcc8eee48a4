"""
Opportunities Router

Endpoints:
- POST /opportunities - Post an opportunity (admin)
- GET /opportunities - List open opportunities (public)
- GET /opportunities/{id} - Get an opportunity (public)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_admin_user
from placement_api.core.database import get_db
from placement_api.modules.opportunities import service
from placement_api.modules.opportunities.models import OpportunityType
from placement_api.modules.opportunities.schemas import (
    OpportunityCreate,
    OpportunityListResponse,
    OpportunityResponse,
)
from placement_api.modules.opportunities.service import OpportunityServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: OpportunityServiceError) -> None:
    raise HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    )


@router.post(
    "",
    response_model=OpportunityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post Opportunity",
    responses={
        400: {"description": "Deadline missing timezone or in the past"},
        403: {"description": "Forbidden - not an admin"},
    },
)
async def create_opportunity(
    data: OpportunityCreate,
    admin: CurrentUser = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_db),
) -> OpportunityResponse:
    try:
        opportunity = await service.create_opportunity(db, data, admin.id)
    except OpportunityServiceError as e:
        _handle_service_error(e)
    return OpportunityResponse.model_validate(opportunity)


@router.get(
    "",
    response_model=OpportunityListResponse,
    summary="List Open Opportunities",
)
async def list_opportunities(
    opportunity_type: OpportunityType | None = Query(None, description="Filter by type"),
    category: str | None = Query(None, max_length=100),
    search: str | None = Query(None, max_length=200, description="Search title, company, location"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> OpportunityListResponse:
    opportunities, total = await service.list_open_opportunities(
        db,
        opportunity_type=opportunity_type,
        category=category,
        search=search,
        skip=skip,
        limit=limit,
    )
    return OpportunityListResponse(
        items=[OpportunityResponse.model_validate(o) for o in opportunities],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{opportunity_id}",
    response_model=OpportunityResponse,
    summary="Get Opportunity",
    responses={404: {"description": "Opportunity not found"}},
)
async def get_opportunity(
    opportunity_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> OpportunityResponse:
    try:
        opportunity = await service.get_opportunity(db, opportunity_id)
    except OpportunityServiceError as e:
        _handle_service_error(e)
    return OpportunityResponse.model_validate(opportunity)
