"""
Recipe search and filter engine.

Responsibilities:
- Parse user-supplied search parameters (query, category, ingredients, mode, page).
- Filter the recipe catalog by text, category, cuisine, time, rating and ingredients.
- Paginate the filtered result in creation order.
- Provide autocomplete ingredient names and cached popular-category stats.
"""
