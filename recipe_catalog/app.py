from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, selectinload
from starlette.middleware.sessions import SessionMiddleware

from .ai_instructions.broadcaster import InstructionsBroadcaster
from .ai_instructions.workflow import AIInstructionsWorkflow, RecipeNotFound
from .db.models import Recipe, RecipeIngredient, is_row_id
from .db.session import SessionLocal, get_db, init_db
from .recipes.cache import CategoryStatsCache
from .recipes.models import (
    AIInstructionsOut,
    AskAIResponse,
    PopularCategoriesResponse,
    RecipeDetail,
    RecipePage,
    RecipeSearchParams,
    RecipeSummary,
)
from .recipes.search import (
    SearchResult,
    build_search_params,
    ingredient_names,
    interpret_search_box,
    search_recipes,
)

logger = logging.getLogger(__name__)

TURBO_STREAM = "text/vnd.turbo-stream.html"
NOT_FOUND_NOTICE = "Recipe not found"

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))

broadcaster = InstructionsBroadcaster()
category_stats = CategoryStatsCache()
workflow = AIInstructionsWorkflow(session_factory=SessionLocal, notify=broadcaster.publish)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Recipe Catalog", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "recipe-catalog-secret-change-in-production"),
)


def get_workflow() -> AIInstructionsWorkflow:
    return workflow


def get_category_stats() -> CategoryStatsCache:
    return category_stats


def get_broadcaster() -> InstructionsBroadcaster:
    return broadcaster


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


# ── Helpers ──────────────────────────────────────────────────────────────


def _wants_stream(request: Request) -> bool:
    return TURBO_STREAM in request.headers.get("accept", "")


def _wants_fragment(request: Request) -> bool:
    return _wants_stream(request) or "turbo-frame" in request.headers


def _render_fragment(request: Request, name: str, context: dict[str, Any]) -> HTMLResponse:
    stream = _wants_stream(request)
    return templates.TemplateResponse(
        request,
        name,
        {**context, "stream": stream},
        media_type=TURBO_STREAM if stream else "text/html",
    )


def _load_recipe(db: Session, recipe_id: int) -> Recipe | None:
    if not is_row_id(recipe_id):
        return None
    return (
        db.query(Recipe)
        .options(selectinload(Recipe.recipe_ingredients).joinedload(RecipeIngredient.ingredient))
        .filter(Recipe.id == recipe_id)
        .first()
    )


def _redirect_with_notice(request: Request, url: str, notice: str) -> RedirectResponse:
    request.session["notice"] = notice
    return RedirectResponse(url=url, status_code=303)


def _search_params(
    q: str | None,
    category: str | None,
    cuisine: str | None,
    ingredients: str | None,
    search_type: str | None,
    page: str | None,
    max_time: int | None,
    min_rating: float | None,
) -> RecipeSearchParams:
    return build_search_params(
        q=q,
        category=category,
        cuisine=cuisine,
        ingredients=ingredients,
        search_type=search_type,
        page=page,
        max_time=max_time,
        min_rating=min_rating,
    )


def _render_listing(
    request: Request,
    db: Session,
    stats: CategoryStatsCache,
    params: RecipeSearchParams,
    heading: str,
    base_path: str,
) -> HTMLResponse:
    result = search_recipes(db, params)
    context: dict[str, Any] = {
        "heading": heading,
        "base_path": base_path,
        "params": params,
        "result": result,
    }
    if _wants_fragment(request):
        return _render_fragment(request, "recipes/_grid.html", context)
    context["notice"] = request.session.pop("notice", None)
    context["popular_categories"] = stats.popular_categories(db)
    context["ingredient_names"] = ingredient_names(db)
    return templates.TemplateResponse(request, "recipes/index.html", context)


def _page_out(result: SearchResult) -> RecipePage:
    return RecipePage(
        items=[RecipeSummary.model_validate(r) for r in result.recipes],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


# ── Health ───────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/")
def root() -> RedirectResponse:
    return RedirectResponse(url="/recipes", status_code=307)


# ── HTML pages ───────────────────────────────────────────────────────────


@app.get("/recipes", response_class=HTMLResponse)
def list_recipes(
    request: Request,
    q: str | None = None,
    category: str | None = None,
    cuisine: str | None = None,
    ingredients: str | None = None,
    search_type: str | None = None,
    page: str | None = None,
    max_time: int | None = Query(default=None, ge=0),
    min_rating: float | None = Query(default=None, ge=0.0, le=5.0),
    db: Session = Depends(get_db),
    stats: CategoryStatsCache = Depends(get_category_stats),
):
    params = _search_params(q, category, cuisine, ingredients, search_type, page, max_time, min_rating)
    return _render_listing(request, db, stats, params, "All Recipes", "/recipes")


@app.get("/recipes/search", response_class=HTMLResponse)
def search_page(
    request: Request,
    q: str | None = None,
    category: str | None = None,
    cuisine: str | None = None,
    ingredients: str | None = None,
    search_type: str | None = None,
    page: str | None = None,
    max_time: int | None = Query(default=None, ge=0),
    min_rating: float | None = Query(default=None, ge=0.0, le=5.0),
    db: Session = Depends(get_db),
    stats: CategoryStatsCache = Depends(get_category_stats),
):
    if ingredients is None or not ingredients.strip():
        q, ingredients = interpret_search_box(q)
    params = _search_params(q, category, cuisine, ingredients, search_type, page, max_time, min_rating)
    return _render_listing(request, db, stats, params, "Search Results", "/recipes/search")


@app.get("/recipes/{recipe_id}", response_class=HTMLResponse)
def show_recipe(
    request: Request,
    recipe_id: int,
    scale: float = Query(default=1.0, gt=0),
    db: Session = Depends(get_db),
):
    recipe = _load_recipe(db, recipe_id)
    if recipe is None:
        return _redirect_with_notice(request, "/recipes", NOT_FOUND_NOTICE)
    return templates.TemplateResponse(
        request,
        "recipes/show.html",
        {
            "recipe": RecipeDetail.from_recipe(recipe, scale),
            "scale": scale,
            "notice": request.session.pop("notice", None),
        },
    )


@app.get("/recipes/{recipe_id}/modal", response_class=HTMLResponse)
def recipe_modal(
    request: Request,
    recipe_id: int,
    scale: float = Query(default=1.0, gt=0),
    db: Session = Depends(get_db),
):
    recipe = _load_recipe(db, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_NOTICE)
    return templates.TemplateResponse(
        request,
        "recipes/_modal.html",
        {"recipe": RecipeDetail.from_recipe(recipe, scale), "scale": scale},
    )


@app.post("/recipes/{recipe_id}/ask_ai", response_class=HTMLResponse)
def ask_ai(
    request: Request,
    recipe_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    flow: AIInstructionsWorkflow = Depends(get_workflow),
):
    try:
        recipe, _ = flow.request_instructions(
            db, recipe_id, enqueue=lambda rid: background_tasks.add_task(flow.run, rid)
        )
    except RecipeNotFound:
        if _wants_fragment(request):
            raise HTTPException(status_code=404, detail=NOT_FOUND_NOTICE)
        return _redirect_with_notice(request, "/recipes", NOT_FOUND_NOTICE)

    if _wants_fragment(request):
        return _render_fragment(
            request,
            "recipes/_ai_instructions.html",
            {"state": AIInstructionsOut.from_recipe(recipe)},
        )
    return RedirectResponse(url=f"/recipes/{recipe_id}", status_code=303)


def _current_state(session_factory: Callable[[], Session], recipe_id: int) -> dict[str, Any] | None:
    with session_factory() as db:
        recipe = db.get(Recipe, recipe_id)
        if recipe is None:
            return None
        return AIInstructionsOut.from_recipe(recipe).model_dump(mode="json")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@app.websocket("/recipes/{recipe_id}/ai_instructions/live")
async def ai_instructions_live(
    websocket: WebSocket,
    recipe_id: int,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    channel: InstructionsBroadcaster = Depends(get_broadcaster),
):
    """Push the recipe's AI-instructions state now and after every change."""
    await websocket.accept()
    if not is_row_id(recipe_id):
        await websocket.close(code=1008, reason=NOT_FOUND_NOTICE)
        return

    loop = asyncio.get_running_loop()
    updates: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    # Subscribe before reading so a result published in between is queued
    unsubscribe = channel.subscribe(
        recipe_id, lambda payload: loop.call_soon_threadsafe(updates.put_nowait, payload)
    )
    listener: asyncio.Task | None = None
    try:
        current = await run_in_threadpool(_current_state, session_factory, recipe_id)
        if current is None:
            await websocket.close(code=1008, reason=NOT_FOUND_NOTICE)
            return
        listener = asyncio.create_task(_wait_for_disconnect(websocket))
        await websocket.send_json(current)
        while True:
            pending_update = asyncio.create_task(updates.get())
            done, _ = await asyncio.wait(
                {listener, pending_update}, return_when=asyncio.FIRST_COMPLETED
            )
            if listener in done:
                pending_update.cancel()
                break
            await websocket.send_json(pending_update.result())
    except WebSocketDisconnect:
        logger.debug("Live channel for recipe %s closed by client", recipe_id)
    finally:
        if listener is not None:
            listener.cancel()
        unsubscribe()


# ── JSON API ─────────────────────────────────────────────────────────────


@app.get("/api/recipes", response_model=RecipePage)
def api_list_recipes(
    q: str | None = None,
    category: str | None = None,
    cuisine: str | None = None,
    ingredients: str | None = None,
    search_type: str | None = None,
    page: str | None = None,
    max_time: int | None = Query(default=None, ge=0),
    min_rating: float | None = Query(default=None, ge=0.0, le=5.0),
    db: Session = Depends(get_db),
) -> RecipePage:
    params = _search_params(q, category, cuisine, ingredients, search_type, page, max_time, min_rating)
    return _page_out(search_recipes(db, params))


@app.get("/api/recipes/{recipe_id}", response_model=RecipeDetail)
def api_get_recipe(
    recipe_id: int,
    scale: float = Query(default=1.0, gt=0),
    db: Session = Depends(get_db),
) -> RecipeDetail:
    recipe = _load_recipe(db, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_NOTICE)
    return RecipeDetail.from_recipe(recipe, scale)


@app.post("/api/recipes/{recipe_id}/ask_ai", response_model=AskAIResponse)
def api_ask_ai(
    recipe_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    flow: AIInstructionsWorkflow = Depends(get_workflow),
):
    try:
        recipe, enqueued = flow.request_instructions(
            db, recipe_id, enqueue=lambda rid: background_tasks.add_task(flow.run, rid)
        )
    except RecipeNotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_NOTICE)

    body = AskAIResponse(enqueued=enqueued, ai_instructions=AIInstructionsOut.from_recipe(recipe))
    return JSONResponse(
        status_code=202 if enqueued else 200,
        content=body.model_dump(mode="json"),
        background=background_tasks,
    )


@app.get("/api/ingredients")
def api_ingredients(db: Session = Depends(get_db)) -> dict[str, list[str]]:
    return {"ingredients": ingredient_names(db)}


@app.get("/api/categories/popular", response_model=PopularCategoriesResponse)
def api_popular_categories(
    db: Session = Depends(get_db),
    stats: CategoryStatsCache = Depends(get_category_stats),
) -> PopularCategoriesResponse:
    return PopularCategoriesResponse(categories=stats.popular_categories(db))


# ── Cache admin ──────────────────────────────────────────────────────────


@app.get("/cache/stats")
def cache_stats(stats: CategoryStatsCache = Depends(get_category_stats)) -> dict:
    return stats.cache.stats()


@app.post("/cache/popular-categories/refresh", response_model=PopularCategoriesResponse)
def refresh_popular_categories(
    db: Session = Depends(get_db),
    stats: CategoryStatsCache = Depends(get_category_stats),
) -> PopularCategoriesResponse:
    categories = stats.refresh(db)
    logger.info("Popular categories cache refreshed with: %s", ", ".join(categories))
    return PopularCategoriesResponse(categories=categories)


@app.delete("/cache")
def clear_cache(stats: CategoryStatsCache = Depends(get_category_stats)) -> dict[str, str]:
    stats.cache.clear()
    logger.info("All caches cleared")
    return {"status": "cleared"}
