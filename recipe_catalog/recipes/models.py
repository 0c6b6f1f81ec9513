from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..db.models import AIInstructionsStatus, Recipe


class SearchType(str, Enum):
    all = "all"
    any = "any"


class RecipeSearchParams(BaseModel):
    query: str | None = None
    category: str | None = None
    cuisine: str | None = None
    ingredients: list[str] | None = Field(
        default=None,
        description="Normalized ingredient names; None when the filter is not active",
    )
    search_type: SearchType = SearchType.all
    max_time: int | None = Field(default=None, ge=0)
    min_rating: float | None = Field(default=None, ge=0.0, le=5.0)
    page: int = Field(default=1, ge=1)

    @property
    def is_filtered(self) -> bool:
        return any(
            value is not None
            for value in (
                self.query,
                self.category,
                self.cuisine,
                self.ingredients,
                self.max_time,
                self.min_rating,
            )
        )


class IngredientLineOut(BaseModel):
    name: str
    quantity: float | None
    unit: str | None
    raw_text: str
    display_text: str


class AIInstructionsOut(BaseModel):
    recipe_id: int
    status: AIInstructionsStatus
    instructions: str | None = None
    generated_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_recipe(cls, recipe: Recipe) -> "AIInstructionsOut":
        return cls(
            recipe_id=recipe.id,
            status=recipe.ai_instructions_status,
            instructions=recipe.ai_instructions,
            generated_at=recipe.ai_instructions_generated_at,
            error=recipe.ai_instructions_error,
        )


class RecipeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    cook_time: int | None
    prep_time: int | None
    total_time: int | None
    ratings: float | None
    cuisine: str | None
    category: str | None
    author: str | None
    image_url: str | None
    ai_instructions_status: AIInstructionsStatus


class RecipeDetail(RecipeSummary):
    ingredients: list[IngredientLineOut]
    ai_instructions: AIInstructionsOut

    @classmethod
    def from_recipe(cls, recipe: Recipe, scale: float = 1) -> "RecipeDetail":
        summary = RecipeSummary.model_validate(recipe)
        lines = [
            IngredientLineOut(
                name=ri.ingredient.name,
                quantity=float(ri.quantity) if ri.quantity is not None else None,
                unit=ri.unit,
                raw_text=ri.raw_text,
                display_text=ri.display_text(scale),
            )
            for ri in recipe.recipe_ingredients
        ]
        return cls(
            **summary.model_dump(),
            ingredients=lines,
            ai_instructions=AIInstructionsOut.from_recipe(recipe),
        )


class RecipePage(BaseModel):
    items: list[RecipeSummary]
    total: int
    page: int
    page_size: int
    total_pages: int


class AskAIResponse(BaseModel):
    enqueued: bool
    ai_instructions: AIInstructionsOut


class PopularCategoriesResponse(BaseModel):
    categories: list[str]
