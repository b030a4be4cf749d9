"""Inline category suggestion from a free-text description."""
import logging
from typing import Optional

from fintrack.categories import EXPENSE_CATEGORIES, resolve_category
from fintrack.exceptions import ExternalModelError
from fintrack.services.llm_client import LLMClient, extract_json_object, get_llm_client

logger = logging.getLogger(__name__)


def build_category_prompt(description: str) -> str:
    return f"""You are a financial transaction categorization expert. Choose the category of this expense.

Description: "{description.strip()}"

Available Categories: {", ".join(EXPENSE_CATEGORIES)}

Respond in this EXACT JSON format:
{{
  "category": "category name"
}}

Response:"""


async def suggest_category(description: str, client: Optional[LLMClient] = None) -> str:
    """
    Return one category from the vocabulary for ``description``.

    Raises:
        ExternalModelError: model unavailable or it answered outside the vocabulary.
            Callers keep the user's current selection in that case.
    """
    client = client or get_llm_client()
    text = await client.agenerate(build_category_prompt(description), json_mode=True, max_tokens=50)
    parsed = extract_json_object(text)

    category = resolve_category(parsed.get("category"))
    if category is None:
        logger.warning(f"AI model suggested invalid category: {parsed.get('category')!r}")
        raise ExternalModelError("AI model suggested a category outside the vocabulary")
    return category
