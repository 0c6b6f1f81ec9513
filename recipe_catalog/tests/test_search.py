import pytest

from recipe_catalog.db.models import Recipe
from recipe_catalog.recipes.models import SearchType
from recipe_catalog.recipes.search import (
    build_search_params,
    ingredient_names,
    interpret_search_box,
    matching_text,
    parse_ingredient_list,
    parse_page,
    parse_search_type,
    search_recipes,
    with_ingredients,
)


@pytest.fixture
def pantry(make_recipe):
    return {
        "cookies": make_recipe(
            "Chocolate Chip Cookies",
            ["2 cups flour", "1 cup sugar", "2 eggs"],
            category="Desserts",
            cuisine="American",
            cook_time=10,
            prep_time=15,
            ratings=4.8,
        ),
        "bread": make_recipe(
            "Flatbread",
            ["3 cups flour", "1 cup water"],
            category="Breads",
            cuisine="Indian",
            cook_time=5,
            prep_time=20,
            ratings=4.0,
        ),
        "lemonade": make_recipe(
            "Lemonade",
            ["1 cup sugar", "4 lemons", "4 cups water"],
            category="Drinks",
            cuisine="American",
            prep_time=10,
            ratings=3.5,
        ),
        "omelette": make_recipe(
            "Cheese Omelette",
            ["3 eggs", "1/2 cup cheddar cheese"],
            category="Breakfast",
            cuisine="French",
            cook_time=5,
            prep_time=5,
        ),
    }


def _titles(query):
    return {recipe.title for recipe in query.all()}


def _search(db, **kwargs):
    return search_recipes(db, build_search_params(**kwargs))


def test_all_mode_requires_every_ingredient(db, pantry):
    result = _titles(with_ingredients(db.query(Recipe), ["flour", "sugar"], "all"))

    assert result == {"Chocolate Chip Cookies"}


def test_any_mode_is_union(db, pantry):
    result = _titles(with_ingredients(db.query(Recipe), ["flour", "sugar"], "any"))

    assert result == {"Chocolate Chip Cookies", "Flatbread", "Lemonade"}


def test_unknown_ingredient_never_matches_all_mode(db, pantry):
    result = _titles(with_ingredients(db.query(Recipe), ["flour", "vanilla extract"], SearchType.all))

    assert result == set()


def test_empty_ingredient_list_matches_nothing(db, pantry):
    assert _titles(with_ingredients(db.query(Recipe), [], "any")) == set()
    assert _titles(with_ingredients(db.query(Recipe), ["  ", ""], "all")) == set()


@pytest.mark.parametrize("mode", ["all", "any"])
def test_ingredient_matching_is_case_and_whitespace_insensitive(db, pantry, mode):
    messy = _search(db, ingredients="FLOUR, sugar ", search_type=mode)
    clean = _search(db, ingredients="flour,sugar", search_type=mode)

    assert [r.id for r in messy.recipes] == [r.id for r in clean.recipes]
    assert messy.total == clean.total > 0


def test_duplicate_requested_ingredients_counted_once(db, pantry):
    result = _search(db, ingredients="flour, Flour, sugar", search_type="all")

    assert [r.title for r in result.recipes] == ["Chocolate Chip Cookies"]


def test_cookies_scenario(db, pantry):
    found = _search(db, ingredients="flour,sugar", search_type="all")
    missing = _search(db, ingredients="vanilla extract", search_type="all")

    assert "Chocolate Chip Cookies" in [r.title for r in found.recipes]
    assert missing.total == 0


def test_query_matches_title_or_ingredient(db, pantry):
    assert _titles(matching_text(db.query(Recipe), "OMELETTE")) == {"Cheese Omelette"}
    assert _titles(matching_text(db.query(Recipe), "lemon")) == {"Lemonade"}
    assert _titles(matching_text(db.query(Recipe), "water")) == {"Flatbread", "Lemonade"}


def test_query_wildcards_are_literal(db, pantry):
    assert _titles(matching_text(db.query(Recipe), "%")) == set()
    assert _titles(matching_text(db.query(Recipe), "_")) == set()


def test_filters_combine_with_and(db, pantry):
    result = _search(db, q="water", category="Drinks")
    assert [r.title for r in result.recipes] == ["Lemonade"]

    result = _search(db, ingredients="sugar", search_type="any", cuisine="American", max_time=20)
    assert [r.title for r in result.recipes] == ["Lemonade"]


def test_category_is_case_sensitive(db, pantry):
    assert _search(db, category="desserts").total == 0
    assert _search(db, category="Desserts").total == 1


def test_min_rating_filter(db, pantry):
    result = _search(db, min_rating=4.0)

    assert {r.title for r in result.recipes} == {"Chocolate Chip Cookies", "Flatbread"}


def test_no_filters_returns_everything_in_id_order(db, pantry):
    result = _search(db)

    assert result.total == 4
    assert [r.id for r in result.recipes] == sorted(r.id for r in result.recipes)


def test_blank_ingredients_param_is_inactive(db, pantry):
    assert _search(db, ingredients="   ").total == 4


def test_only_commas_in_ingredients_param_matches_nothing(db, pantry):
    assert _search(db, ingredients=" , ,").total == 0


def test_pagination(db, make_recipe):
    for n in range(25):
        make_recipe(f"Recipe {n:02d}")

    pages = [_search(db, page=p) for p in (1, 2, 3, 4)]

    assert [len(p.recipes) for p in pages] == [12, 12, 1, 0]
    assert pages[0].total_pages == 3
    assert pages[0].has_next and not pages[0].has_previous
    assert pages[2].has_previous and not pages[2].has_next
    assert pages[3].total == 25


def test_page_beyond_any_offset_is_empty(db, pantry):
    result = _search(db, page="99999999999999999999")

    assert result.recipes == []
    assert result.total == 4
    assert result.page == 99999999999999999999


def test_ingredient_names_are_distinct_and_sorted(db, pantry):
    assert ingredient_names(db) == ["cheddar cheese", "eggs", "flour", "lemons", "sugar", "water"]


def test_parse_ingredient_list():
    assert parse_ingredient_list("FLOUR, sugar ,, flour") == ["flour", "sugar"]
    assert parse_ingredient_list(" , ") == []


@pytest.mark.parametrize("raw, expected", [("any", SearchType.any), ("ALL", SearchType.all), ("bogus", SearchType.all), (None, SearchType.all)])
def test_parse_search_type(raw, expected):
    assert parse_search_type(raw) is expected


@pytest.mark.parametrize("raw, expected", [("3", 3), (None, 1), ("abc", 1), ("0", 1), ("-4", 1), (2, 2)])
def test_parse_page(raw, expected):
    assert parse_page(raw) == expected


def test_search_box_disambiguation():
    assert interpret_search_box("flour, sugar") == (None, "flour, sugar")
    assert interpret_search_box("  pancakes ") == ("pancakes", None)
    assert interpret_search_box("   ") == (None, None)
    assert interpret_search_box(None) == (None, None)


def test_build_search_params_blanks_become_none():
    params = build_search_params(q=" ", category="", ingredients=None, page="x")

    assert params.query is None
    assert params.category is None
    assert params.ingredients is None
    assert params.page == 1
    assert not params.is_filtered
