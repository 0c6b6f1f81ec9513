from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from ..db.models import Ingredient, Recipe, RecipeIngredient
from ..db.session import SessionLocal, init_db
from .config import DEFAULT_IMPORT_CONFIG
from .parser import normalize_name, parse_ingredient_line

logger = logging.getLogger(__name__)


@dataclass
class ImportResults:
    created_recipes: int = 0
    updated_recipes: int = 0
    created_ingredients: int = 0
    errors: list[str] = field(default_factory=list)


def _clean_string(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RecipeImporter:
    """
    Load recipes from the JSON import format into the database.

    Each record is committed on its own: a bad record is rolled back, noted
    in ``results.errors`` and the batch carries on with the next one.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.results = ImportResults()

    @property
    def errors(self) -> list[str]:
        return self.results.errors

    def import_file(self, path: str | Path) -> bool:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File does not exist: {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            self.errors.append(f"Invalid JSON format: {exc}")
            return False
        except (ValueError, OSError) as exc:
            logger.error("Could not read %s: %s", path, exc)
            self.errors.append(f"Unexpected error: {exc}")
            return False

        if not isinstance(data, list):
            self.errors.append("Invalid JSON format: expected an array of recipes")
            return False

        self.import_recipes(data)
        return not self.errors

    def import_recipes(self, records: list[Any]) -> ImportResults:
        for index, record in enumerate(records):
            try:
                self._import_record(record)
            except Exception as exc:
                self.db.rollback()
                logger.warning("Skipping recipe at index %d: %s", index, exc)
                self.errors.append(f"Error importing recipe at index {index}: {exc}")
        return self.results

    def _import_record(self, record: Any) -> None:
        if not isinstance(record, dict):
            raise ValueError("recipe must be a JSON object")

        title = _clean_string(record.get("title"))
        existing = None
        if title:
            existing = self.db.query(Recipe).filter(Recipe.title == title).first()

        recipe = existing or Recipe()
        recipe.title = title
        recipe.cook_time = record.get("cook_time")
        recipe.prep_time = record.get("prep_time")
        recipe.ratings = record.get("ratings")
        recipe.cuisine = _clean_string(record.get("cuisine"))
        recipe.category = _clean_string(record.get("category"))
        recipe.author = _clean_string(record.get("author"))
        recipe.image_url = _clean_string(record.get("image"))

        if existing is None:
            self.db.add(recipe)
        else:
            recipe.recipe_ingredients.clear()
        self.db.flush()

        new_ingredients = self._link_ingredients(recipe, record.get("ingredients"))
        self.db.commit()

        self.results.created_ingredients += new_ingredients
        if existing is None:
            self.results.created_recipes += 1
        else:
            self.results.updated_recipes += 1
        logger.info("Imported recipe %r (id=%s)", recipe.title, recipe.id)

    def _link_ingredients(self, recipe: Recipe, lines: Any) -> int:
        if not isinstance(lines, list):
            return 0

        created = 0
        seen: set[str] = set()
        for line in lines:
            if not isinstance(line, str) or not line.strip():
                continue
            parsed = parse_ingredient_line(line)
            if not parsed.name or parsed.name in seen:
                continue

            ingredient, is_new = self._find_or_create_ingredient(parsed.name)
            created += is_new
            recipe.recipe_ingredients.append(
                RecipeIngredient(
                    ingredient=ingredient,
                    raw_text=line,
                    quantity=parsed.quantity,
                    unit=parsed.unit,
                )
            )
            seen.add(parsed.name)

        self.db.flush()
        return created

    def _find_or_create_ingredient(self, name: str) -> tuple[Ingredient, bool]:
        name = normalize_name(name)
        ingredient = self.db.query(Ingredient).filter(Ingredient.name == name).first()
        if ingredient is not None:
            return ingredient, False
        ingredient = Ingredient(name=name)
        self.db.add(ingredient)
        self.db.flush()
        return ingredient, True


def run_import(path: str | Path, db: Session) -> ImportResults:
    """Import ``path`` and return the counters and errors."""
    importer = RecipeImporter(db)
    importer.import_file(path)
    return importer.results


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    target = Path(argv[0]) if argv else DEFAULT_IMPORT_CONFIG.recipes_path

    init_db()
    with SessionLocal() as session:
        results = run_import(target, session)

    print(
        f"Import complete. Created {results.created_recipes} recipes, "
        f"updated {results.updated_recipes}, "
        f"created {results.created_ingredients} ingredients."
    )
    for error in results.errors:
        print(f"  - {error}")
    return 1 if results.errors else 0


if __name__ == "__main__":
    sys.exit(main())
