"""
Anthropic client helpers shared by the judge, the generator and the rewriter.
"""

from typing import Any

from anthropic import AsyncAnthropic

from rageval.config import settings
from rageval.evaluation.exceptions import ModelCallError


def create_anthropic_client() -> AsyncAnthropic:
    """Build an async Anthropic client, failing early without an API key."""
    if settings.anthropic_api_key is None:
        raise ModelCallError("ANTHROPIC_API_KEY is not set")
    return AsyncAnthropic(api_key=settings.anthropic_api_key.get_secret_value())


def response_text(response: Any) -> str:
    """Concatenate the text blocks of a Messages API response."""
    return "".join(
        block.text for block in response.content
        if getattr(block, "type", "text") == "text"
    ).strip()
