"""
Payments Module

Manual M-Pesa fee payments: validation, duplicate detection, the payment
ledger and the admin verification workflow.
"""

from .admin_router import router as admin_router
from .router import router

__all__ = ["router", "admin_router"]
