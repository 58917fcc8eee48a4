"""
Opportunities Module

Internship and industrial-attachment postings, plus the background sweep
that closes postings past their deadline or out of slots.
"""

from .jobs import register_opportunity_jobs
from .router import router

__all__ = ["router", "register_opportunity_jobs"]
