"""
HealthyMeal Recipe Models
Database models for recipes, ingredients, audit trail and AI jobs
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from models.users import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class AIJobStatus(PyEnum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AIJobType(PyEnum):
    NUTRITION = "nutrition"
    SUBSTITUTION = "substitution"


class Recipe(Base):
    """Recipe model; ``owner_user_id`` is always set server side"""
    __tablename__ = "recipes"
    __table_args__ = (
        CheckConstraint("length(title) > 0 AND length(title) <= 300", name="title_length"),
        CheckConstraint("length(raw_text) > 0", name="raw_text_present"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)

    # Structured payload as submitted: title, ingredients, steps
    recipe_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Nutrition summary, overwritten by enrichment
    cached_nutrition: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    ingredients = relationship("Ingredient", back_populates="recipe", order_by="Ingredient.position", cascade="all, delete-orphan", passive_deletes=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "title": self.title,
            "raw_text": self.raw_text,
            "recipe_data": self.recipe_data,
            "cached_nutrition": self.cached_nutrition,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted_at": self.deleted_at,
        }


class Ingredient(Base):
    """Ingredient row owned by exactly one recipe"""
    __tablename__ = "ingredients"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("length(name) > 0 AND length(name) <= 200", name="name_length"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    normalized_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    unit_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Index in recipe_data.ingredients
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    recipe = relationship("Recipe", back_populates="ingredients")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recipe_id": self.recipe_id,
            "name": self.name,
            "normalized_name": self.normalized_name,
            "quantity": self.quantity,
            "unit_id": self.unit_id,
            "unit_text": self.unit_text,
        }


class RecipeAudit(Base):
    """Append-only audit trail for recipe writes"""
    __tablename__ = "recipe_audit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    anonymized_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    meta: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AIJob(Base):
    """Unit of LLM work for a recipe"""
    __tablename__ = "ai_jobs"
    __table_args__ = (
        # At most one active job per (recipe, type)
        Index(
            "uq_ai_jobs_active_recipe_type",
            "recipe_id",
            "type",
            unique=True,
            postgresql_where=text("status IN ('queued', 'running')"),
            sqlite_where=text("status IN ('queued', 'running')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=True
    )
    requested_by_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=AIJobStatus.QUEUED.value, nullable=False)
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
