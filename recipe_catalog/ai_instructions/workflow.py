from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from ..data_ingestion.parser import format_quantity
from ..db.models import AIInstructionsStatus, Recipe, is_row_id, utcnow
from ..llm.groq_client import InstructionGenerationError, generate_instructions
from ..recipes.models import AIInstructionsOut
from .states import Event, InvalidTransition, edge, transition

logger = logging.getLogger(__name__)

Generator = Callable[[dict[str, Any]], str]
Notifier = Callable[[int, dict[str, Any]], Any]
Enqueue = Callable[[int], None]


class RecipeNotFound(Exception):
    pass


def recipe_prompt_data(recipe: Recipe) -> dict[str, Any]:
    return {
        "title": recipe.title,
        "prep_time": recipe.prep_time,
        "cook_time": recipe.cook_time,
        "category": recipe.category,
        "cuisine": recipe.cuisine,
        "ingredients": [
            {
                "quantity": format_quantity(ri.quantity) or None,
                "unit": ri.unit,
                "name": ri.ingredient.name,
            }
            for ri in recipe.recipe_ingredients
        ],
    }


def _no_observers(recipe_id: int, payload: dict[str, Any]) -> None:
    return None


class AIInstructionsWorkflow:
    """
    The only writer of a recipe's ``ai_instructions_*`` columns.

    ``request_instructions`` flips idle/failed recipes to pending with a
    single conditional UPDATE and only then enqueues ``run``. ``run`` re-checks
    the status before calling the model and guards its final write the same
    way, so duplicate or stale tasks are dropped. This is best-effort
    idempotency, not a distributed lock.
    """

    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        generate: Generator = generate_instructions,
        notify: Notifier = _no_observers,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._generate = generate
        self._notify = notify
        self._clock = clock

    def request_instructions(
        self,
        db: Session,
        recipe_id: int,
        enqueue: Enqueue,
    ) -> tuple[Recipe, bool]:
        """
        Idempotently trigger generation for ``recipe_id``.

        Returns the recipe and whether a background task was enqueued.
        Raises ``RecipeNotFound`` for an unknown id.
        """
        if not is_row_id(recipe_id):
            raise RecipeNotFound(f"Recipe {recipe_id} not found")
        sources, target = edge(Event.request)
        result = db.execute(
            update(Recipe)
            .where(Recipe.id == recipe_id, Recipe.ai_instructions_status.in_(sources))
            .values(ai_instructions_status=target, ai_instructions_error=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        claimed = result.rowcount == 1

        recipe = db.get(Recipe, recipe_id, populate_existing=True)
        if recipe is None:
            raise RecipeNotFound(f"Recipe {recipe_id} not found")

        if not claimed:
            logger.info(
                "AI instructions for recipe %s already %s; not enqueuing",
                recipe_id,
                recipe.ai_instructions_status.value,
            )
            return recipe, False

        logger.info("AI instructions for recipe %s marked %s", recipe_id, target.value)
        enqueue(recipe_id)
        return recipe, True

    def run(self, recipe_id: int) -> AIInstructionsStatus | None:
        """Background task: generate instructions for a pending recipe."""
        with self._session_factory() as db:
            recipe = db.get(Recipe, recipe_id) if is_row_id(recipe_id) else None
            if recipe is None:
                logger.warning("Recipe %s vanished before AI instructions ran", recipe_id)
                return None
            try:
                transition(recipe.ai_instructions_status, Event.succeed)
            except InvalidTransition as exc:
                logger.info("Skipping AI instructions for recipe %s: %s", recipe_id, exc)
                return None

            prompt_data = recipe_prompt_data(recipe)
            try:
                instructions = self._generate(prompt_data)
            except InstructionGenerationError as exc:
                logger.error("AI instructions failed for recipe %s: %s", recipe_id, exc)
                self._finish(db, recipe_id, Event.fail, ai_instructions_error=str(exc))
            except Exception as exc:
                logger.error(
                    "AI instructions failed for recipe %s: %s - %s",
                    recipe_id,
                    type(exc).__name__,
                    exc,
                )
                self._finish(
                    db,
                    recipe_id,
                    Event.fail,
                    ai_instructions_error=f"Failed to generate AI instructions: {exc}",
                )
            else:
                self._finish(
                    db,
                    recipe_id,
                    Event.succeed,
                    ai_instructions=instructions,
                    ai_instructions_generated_at=self._clock(),
                    ai_instructions_error=None,
                )

            recipe = db.get(Recipe, recipe_id, populate_existing=True)
            if recipe is None:
                return None
            self._notify(recipe_id, AIInstructionsOut.from_recipe(recipe).model_dump(mode="json"))
            return recipe.ai_instructions_status

    def _finish(self, db: Session, recipe_id: int, event: Event, **values: Any) -> bool:
        sources, target = edge(event)
        result = db.execute(
            update(Recipe)
            .where(Recipe.id == recipe_id, Recipe.ai_instructions_status.in_(sources))
            .values(ai_instructions_status=target, **values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            logger.warning(
                "Recipe %s left %s before AI instructions finished; result dropped",
                recipe_id,
                sources[0].value,
            )
            return False
        logger.info("AI instructions for recipe %s are now %s", recipe_id, target.value)
        return True
