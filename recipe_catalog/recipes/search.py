from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import distinct, false, func, or_, select
from sqlalchemy.orm import Query, Session

from ..data_ingestion.parser import normalize_name
from ..db.models import Ingredient, Recipe, RecipeIngredient
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .models import RecipeSearchParams, SearchType

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    recipes: list[Recipe]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


# ── Parameter parsing ────────────────────────────────────────────────────


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_ingredient_list(raw: str) -> list[str]:
    """Split a comma-separated ingredient string into unique normalized names."""
    names: list[str] = []
    for token in raw.split(","):
        name = normalize_name(token)
        if name and name not in names:
            names.append(name)
    return names


def parse_search_type(raw: str | None) -> SearchType:
    try:
        return SearchType((raw or "").strip().lower())
    except ValueError:
        return SearchType.all


def parse_page(raw: str | int | None) -> int:
    """Positive page number, falling back to 1 for anything unusable."""
    try:
        page = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1


def interpret_search_box(text: str | None) -> tuple[str | None, str | None]:
    """
    Route a single navbar search box to ``(query, ingredients)``.

    Input with a comma is an ingredient list, anything else a text query.
    """
    text = _blank_to_none(text)
    if text is None:
        return None, None
    if "," in text:
        return None, text
    return text, None


def build_search_params(
    *,
    q: str | None = None,
    category: str | None = None,
    cuisine: str | None = None,
    ingredients: str | None = None,
    search_type: str | None = None,
    page: str | int | None = None,
    max_time: int | None = None,
    min_rating: float | None = None,
) -> RecipeSearchParams:
    raw_ingredients = _blank_to_none(ingredients)
    return RecipeSearchParams(
        query=_blank_to_none(q),
        category=_blank_to_none(category),
        cuisine=_blank_to_none(cuisine),
        ingredients=parse_ingredient_list(raw_ingredients) if raw_ingredients else None,
        search_type=parse_search_type(search_type),
        max_time=max_time,
        min_rating=min_rating,
        page=parse_page(page),
    )


# ── Filters ──────────────────────────────────────────────────────────────


def _recipe_ids_with_ingredient(condition):
    return (
        select(RecipeIngredient.recipe_id)
        .join(Ingredient, Ingredient.id == RecipeIngredient.ingredient_id)
        .where(condition)
    )


def matching_text(query: Query, text: str) -> Query:
    """Keep recipes whose title or any ingredient name contains ``text``."""
    needle = text.strip().lower()
    if not needle:
        return query
    return query.filter(
        or_(
            func.lower(Recipe.title).contains(needle, autoescape=True),
            Recipe.id.in_(
                _recipe_ids_with_ingredient(Ingredient.name.contains(needle, autoescape=True))
            ),
        )
    )


def with_ingredients(
    query: Query,
    names: list[str],
    mode: SearchType | str = SearchType.all,
) -> Query:
    """
    Restrict ``query`` by linked ingredient names.

    ``all`` keeps recipes linked to every requested ingredient, ``any`` keeps
    recipes linked to at least one. An empty request matches nothing.
    """
    requested: list[str] = []
    for name in names:
        name = normalize_name(name)
        if name and name not in requested:
            requested.append(name)

    if not requested:
        return query.filter(false())

    matches = _recipe_ids_with_ingredient(Ingredient.name.in_(requested))
    if SearchType(mode) is SearchType.all:
        matches = matches.group_by(RecipeIngredient.recipe_id).having(
            func.count(distinct(Ingredient.id)) == len(requested)
        )
    return query.filter(Recipe.id.in_(matches))


def apply_filters(query: Query, params: RecipeSearchParams) -> Query:
    if params.category is not None:
        query = query.filter(Recipe.category == params.category)
    if params.cuisine is not None:
        query = query.filter(Recipe.cuisine == params.cuisine)
    if params.max_time is not None:
        query = query.filter(Recipe.total_time <= params.max_time)
    if params.min_rating is not None:
        query = query.filter(Recipe.ratings >= params.min_rating)
    if params.query is not None:
        query = matching_text(query, params.query)
    if params.ingredients is not None:
        query = with_ingredients(query, params.ingredients, params.search_type)
    return query


def search_recipes(
    db: Session,
    params: RecipeSearchParams,
    config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> SearchResult:
    filtered = apply_filters(db.query(Recipe), params)
    total = filtered.count()

    page_size = config.page_size
    offset = (params.page - 1) * page_size
    if offset >= total:
        recipes = []
    else:
        recipes = filtered.order_by(Recipe.id.asc()).offset(offset).limit(page_size).all()

    logger.debug(
        "Recipe search %s matched %d (page %d)",
        params.model_dump(exclude_none=True),
        total,
        params.page,
    )
    return SearchResult(recipes=recipes, total=total, page=params.page, page_size=page_size)


def ingredient_names(db: Session) -> list[str]:
    """All distinct ingredient names, for autocomplete."""
    rows = db.query(Ingredient.name).distinct().order_by(Ingredient.name.asc()).all()
    return [name for (name,) in rows]
