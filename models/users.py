"""
HealthyMeal User Models
Internal user profiles and their mapping to the managed auth service
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Internal user profile; recipes are owned by ``user_id``"""
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Health profile used by AI operations
    disease: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    age: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sex: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    allergies: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    preferences: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(user_id={self.user_id})>"


class AuthUserMap(Base):
    """Maps the auth service subject (``sub`` claim) to an internal user"""
    __tablename__ = "auth_user_map"

    auth_user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
