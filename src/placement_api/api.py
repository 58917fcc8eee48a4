from fastapi import APIRouter

from placement_api.modules.applications import admin_router as admin_applications_router
from placement_api.modules.applications import router as applications_router
from placement_api.modules.notifications import router as notifications_router
from placement_api.modules.opportunities import router as opportunities_router
from placement_api.modules.payments import admin_router as admin_payments_router
from placement_api.modules.payments import router as payments_router

api_router = APIRouter()

api_router.include_router(opportunities_router, prefix="/opportunities", tags=["Opportunities"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])

api_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)

api_router.include_router(
    admin_applications_router,
    prefix="/admin/applications",
    tags=["Admin - Applications"],
)

api_router.include_router(
    admin_payments_router,
    prefix="/admin/payments",
    tags=["Admin - Payments"],
)
