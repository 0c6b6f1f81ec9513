"""
Recipe import package.

Responsibilities:
- Parse freeform ingredient lines into name, quantity and unit.
- Normalize ingredient names for storage and lookup.
- Import a JSON recipe file, one transaction per recipe.
"""
