"""
AI cooking-instruction workflow.

Responsibilities:
- Own the per-recipe instruction status state machine.
- Mark a recipe pending and enqueue generation exactly once per request window.
- Run generation in the background and record the outcome.
- Push the new state to live subscribers of the recipe.
"""
