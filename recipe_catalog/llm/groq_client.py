from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import groq
from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

NO_INSTRUCTIONS = "No instructions generated"

SYSTEM_PROMPT = (
    "You are a professional chef assistant. "
    "Generate clear, step-by-step cooking instructions for the given recipe. "
    "Format your response as a simple numbered list starting with '1.' "
    "with NO markdown formatting, NO headers, NO bold text, NO titles. "
    "Just plain numbered steps."
)


class ErrorCategory(str, Enum):
    rate_limited = "rate_limited"
    unauthorized = "unauthorized"
    model_unavailable = "model_unavailable"
    quota_exceeded = "quota_exceeded"
    bad_request = "bad_request"
    transport = "transport"
    other = "other"


_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.rate_limited: "API rate limit exceeded. Please try again in a few minutes.",
    ErrorCategory.unauthorized: "Invalid API key or authentication failed.",
    ErrorCategory.model_unavailable: "Model not available. Please check the model configuration.",
    ErrorCategory.quota_exceeded: "API quota exceeded. Please check your billing.",
    ErrorCategory.bad_request: "Bad request to the text generation API. Please check the request parameters.",
}


class InstructionGenerationError(Exception):
    """A failed generation, with a message fit to show to the user."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.other) -> None:
        super().__init__(message)
        self.category = category

    @classmethod
    def for_category(cls, category: ErrorCategory) -> "InstructionGenerationError":
        return cls(_MESSAGES[category], category)


def _format_minutes(value: Any) -> str:
    return f"{value} minutes" if value is not None else "not specified"


def build_user_message(recipe: dict[str, Any]) -> str:
    lines = [f"Recipe: {recipe.get('title', '')}", "", "Ingredients:"]
    for item in recipe.get("ingredients", []):
        parts = [item.get("quantity"), item.get("unit"), item.get("name")]
        lines.append(" ".join(str(p) for p in parts if p not in (None, "")))

    lines.append("")
    lines.append("Additional Info:")
    lines.append(f"- Prep time: {_format_minutes(recipe.get('prep_time'))}")
    lines.append(f"- Cook time: {_format_minutes(recipe.get('cook_time'))}")
    lines.append(f"- Category: {recipe.get('category') or 'not specified'}")
    lines.append(f"- Cuisine: {recipe.get('cuisine') or 'not specified'}")
    lines.append("")
    lines.append("Please provide detailed step-by-step cooking instructions for this recipe.")
    return "\n".join(lines)


def placeholder_instructions(recipe: dict[str, Any]) -> str:
    """Deterministic stand-in used when no API key is configured."""
    names = [item.get("name") for item in recipe.get("ingredients", []) if item.get("name")]
    steps = [
        f"Gather the ingredients: {', '.join(names)}." if names else "Gather the ingredients.",
    ]
    if recipe.get("prep_time"):
        steps.append(f"Prepare the ingredients (about {recipe['prep_time']} minutes).")
    if recipe.get("cook_time"):
        steps.append(f"Cook for about {recipe['cook_time']} minutes.")
    steps.append(f"Serve the {recipe.get('title', 'dish')}.")
    return "\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1))


def extract_content(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return NO_INSTRUCTIONS
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None) or ""
    return content.strip() or NO_INSTRUCTIONS


def _categorize(exc: groq.APIError) -> InstructionGenerationError:
    text = str(exc).lower()
    if "quota" in text:
        return InstructionGenerationError.for_category(ErrorCategory.quota_exceeded)
    if isinstance(exc, groq.RateLimitError):
        return InstructionGenerationError.for_category(ErrorCategory.rate_limited)
    if isinstance(exc, (groq.AuthenticationError, groq.PermissionDeniedError)):
        return InstructionGenerationError.for_category(ErrorCategory.unauthorized)
    if isinstance(exc, groq.NotFoundError) or "model_not_found" in text or "decommissioned" in text:
        return InstructionGenerationError.for_category(ErrorCategory.model_unavailable)
    if isinstance(exc, groq.BadRequestError):
        return InstructionGenerationError.for_category(ErrorCategory.bad_request)
    if isinstance(exc, groq.APIConnectionError):
        return InstructionGenerationError(f"HTTP error: {exc}", ErrorCategory.transport)
    return InstructionGenerationError(f"Groq API error: {exc}", ErrorCategory.other)


def generate_instructions(
    recipe: dict[str, Any],
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    """
    Ask Groq for step-by-step cooking instructions for ``recipe``.

    ``recipe`` carries title, prep/cook time, category, cuisine and a list of
    ``{quantity, unit, name}`` ingredients. Raises
    ``InstructionGenerationError`` on any failure.
    """
    if not config.enabled or not config.api_key:
        return placeholder_instructions(recipe)

    prompt = build_user_message(recipe)
    logger.debug("Requesting instructions with prompt: %s...", prompt[:100])

    try:
        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    except groq.APIError as exc:
        logger.warning("Groq API call failed: %s", exc, exc_info=True)
        raise _categorize(exc) from exc
    except Exception as exc:
        logger.warning("Unexpected error calling Groq", exc_info=True)
        raise InstructionGenerationError(
            f"Failed to generate AI instructions: {exc}", ErrorCategory.other
        ) from exc

    return extract_content(response)
