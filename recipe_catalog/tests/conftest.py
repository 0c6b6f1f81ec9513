from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_catalog import app as app_module
from recipe_catalog.ai_instructions.broadcaster import InstructionsBroadcaster
from recipe_catalog.ai_instructions.workflow import AIInstructionsWorkflow
from recipe_catalog.data_ingestion.parser import parse_ingredient_line
from recipe_catalog.db.models import Ingredient, Recipe, RecipeIngredient
from recipe_catalog.db.session import Base, get_db, init_db
from recipe_catalog.recipes.cache import CategoryStatsCache

# Same in-memory database shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

GENERATED = "1. Mix everything.\n2. Bake for 30 minutes."


@pytest.fixture
def db():
    init_db(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_recipe(db):
    """Insert a recipe whose ingredient lines go through the import parser."""

    def _make(title: str, ingredients=(), **fields) -> Recipe:
        recipe = Recipe(title=title, **fields)
        db.add(recipe)
        for line in ingredients:
            parsed = parse_ingredient_line(line)
            ingredient = db.query(Ingredient).filter(Ingredient.name == parsed.name).first()
            if ingredient is None:
                ingredient = Ingredient(name=parsed.name)
                db.add(ingredient)
            recipe.recipe_ingredients.append(
                RecipeIngredient(
                    ingredient=ingredient,
                    raw_text=line,
                    quantity=parsed.quantity,
                    unit=parsed.unit,
                )
            )
            db.flush()
        db.commit()
        return recipe

    return _make


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def generator():
    return MagicMock(return_value=GENERATED)


@pytest.fixture
def broadcaster():
    return InstructionsBroadcaster()


@pytest.fixture
def workflow(generator, broadcaster):
    return AIInstructionsWorkflow(
        session_factory=TestingSessionLocal,
        generate=generator,
        notify=broadcaster.publish,
    )


@pytest.fixture
def category_stats():
    return CategoryStatsCache()


@pytest.fixture
def client(db, workflow, broadcaster, category_stats):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app = app_module.app
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[app_module.get_workflow] = lambda: workflow
    app.dependency_overrides[app_module.get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[app_module.get_category_stats] = lambda: category_stats
    app.dependency_overrides[app_module.get_session_factory] = lambda: TestingSessionLocal
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
