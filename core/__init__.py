"""
HealthyMeal Core Module
Central configuration and utilities
"""

from .config import Settings, get_settings
from .database import Base, Database, get_db
from .errors import AppError, ErrorKind

__all__ = [
    "Settings",
    "get_settings",
    "Base",
    "Database",
    "get_db",
    "AppError",
    "ErrorKind",
]
