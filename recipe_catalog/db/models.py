from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship, validates

from ..data_ingestion.parser import format_quantity, normalize_name
from .session import Base

# Largest value a signed 64-bit INTEGER column can bind
MAX_ROW_ID = 2**63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_row_id(value: int) -> bool:
    """Whether ``value`` could be a primary key at all."""
    return 1 <= value <= MAX_ROW_ID


class AIInstructionsStatus(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def _to_minutes(field: str, value):
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{field} must be a whole number of minutes")
    try:
        minutes = int(value.strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a whole number of minutes") from None
    if minutes < 0:
        raise ValueError(f"{field} must be greater than or equal to 0")
    return minutes


def _to_decimal(field: str, value) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number") from None
    if not number.is_finite():
        raise ValueError(f"{field} must be a number")
    return number


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    cook_time = Column(Integer, nullable=True)
    prep_time = Column(Integer, nullable=True)
    total_time = Column(Integer, nullable=True, index=True)
    ratings = Column(Numeric(3, 2), nullable=True, index=True)
    cuisine = Column(String(255), nullable=True, index=True)
    category = Column(String(255), nullable=True, index=True)
    author = Column(String(255), nullable=True)
    image_url = Column(Text, nullable=True)

    # Written only by ai_instructions.workflow
    ai_instructions = Column(Text, nullable=True)
    ai_instructions_status = Column(
        Enum(
            AIInstructionsStatus,
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=AIInstructionsStatus.IDLE,
        index=True,
    )
    ai_instructions_generated_at = Column(DateTime(timezone=True), nullable=True)
    ai_instructions_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    recipe_ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RecipeIngredient.id",
    )
    ingredients = relationship(
        "Ingredient",
        secondary="recipe_ingredients",
        viewonly=True,
        order_by="Ingredient.name",
    )

    __table_args__ = (
        Index("ix_recipes_category_total_time", "category", "total_time"),
        Index("ix_recipes_cuisine_ratings", "cuisine", "ratings"),
    )

    @validates("title")
    def _validate_title(self, key, value):
        if value is None or not str(value).strip():
            raise ValueError("title can't be blank")
        return str(value).strip()

    @validates("cook_time", "prep_time")
    def _validate_times(self, key, value):
        return _to_minutes(key, value)

    @validates("ratings")
    def _validate_ratings(self, key, value):
        rating = _to_decimal(key, value)
        if rating is not None and not (0 <= rating <= 5):
            raise ValueError("ratings must be between 0 and 5")
        return rating

    def compute_total_time(self) -> int | None:
        if self.cook_time is None and self.prep_time is None:
            return None
        return (self.cook_time or 0) + (self.prep_time or 0)

    def __repr__(self) -> str:
        return f"<Recipe id={self.id} title={self.title!r}>"


@event.listens_for(Recipe, "before_insert")
@event.listens_for(Recipe, "before_update")
def _sync_total_time(mapper, connection, target: Recipe) -> None:
    target.total_time = target.compute_total_time()


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    recipe_ingredients = relationship(
        "RecipeIngredient", back_populates="ingredient", passive_deletes=True
    )

    @validates("name")
    def _validate_name(self, key, value):
        name = normalize_name(value or "")
        if not name:
            raise ValueError("name can't be blank")
        return name

    def __repr__(self) -> str:
        return f"<Ingredient id={self.id} name={self.name!r}>"


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Numeric(8, 3), nullable=True)
    unit = Column(String(64), nullable=True)
    raw_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    recipe = relationship("Recipe", back_populates="recipe_ingredients")
    ingredient = relationship("Ingredient", back_populates="recipe_ingredients", lazy="joined")

    __table_args__ = (
        UniqueConstraint("recipe_id", "ingredient_id", name="uq_recipe_ingredients_recipe_ingredient"),
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        quantity = _to_decimal(key, value)
        if quantity is not None and quantity <= 0:
            raise ValueError("quantity must be greater than 0")
        return quantity

    @validates("raw_text")
    def _validate_raw_text(self, key, value):
        if value is None or not str(value).strip():
            raise ValueError("raw_text can't be blank")
        return value

    def scaled_quantity(self, factor) -> Decimal | None:
        if self.quantity is None:
            return None
        return Decimal(self.quantity) * Decimal(str(factor))

    def display_text(self, factor=1) -> str:
        if self.quantity is not None and self.unit and Decimal(str(factor)) != 1:
            scaled = format_quantity(self.scaled_quantity(factor))
            return f"{scaled} {self.unit} {self.ingredient.name}"
        return self.raw_text

    def __repr__(self) -> str:
        return f"<RecipeIngredient recipe_id={self.recipe_id} ingredient_id={self.ingredient_id}>"
