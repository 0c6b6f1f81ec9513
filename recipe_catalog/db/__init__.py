"""
Relational store.

Responsibilities:
- Configure the SQLAlchemy engine and session factory.
- Define the recipes / ingredients / recipe_ingredients tables.
- Enforce write-time validation and keep derived columns in sync.
"""
