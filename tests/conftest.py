"""
Shared fixtures for module tests.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from placement_api.core.auth import CurrentUser


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def applicant():
    """An authenticated student."""
    return CurrentUser(id=uuid4(), email="jane@students.ac.ke", role="student", name="Jane Wanjiku")


@pytest.fixture
def other_applicant():
    return CurrentUser(id=uuid4(), email="john@students.ac.ke", role="student", name="John Otieno")


@pytest.fixture
def admin_user():
    """An authenticated admin."""
    return CurrentUser(id=uuid4(), email="admin@placements.dev", role="admin", name="Admin")
