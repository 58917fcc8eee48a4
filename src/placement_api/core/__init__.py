"""
Core module - Configuration, database, security, and utilities.
"""

from placement_api.core.config import get_settings, settings
from placement_api.core.database import Base, close_db, get_db, init_db
from placement_api.core.redis import close_redis, get_redis, init_redis
from placement_api.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "create_access_token",
    "decode_token",
]
