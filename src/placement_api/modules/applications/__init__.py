"""
Applications Module

Applicant-facing application lifecycle (draft, edit, submit) and the
admin review queue. Payment-driven status changes are made by the
payments module through this module's repository.
"""

from .admin_router import router as admin_router
from .router import router

__all__ = ["router", "admin_router"]
