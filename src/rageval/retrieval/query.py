"""
Query rewriting for follow-up questions.

Problem: Follow-up questions lean on the conversation.
- History: "What plans do you offer?" / "Basic, Pro and Enterprise."
- Follow-up: "How much is the second one?"

Searching for "How much is the second one?" retrieves nothing useful.

Solution: Ask an LLM to rewrite the follow-up into a self-contained question.

Example:
    Input:  "How much is the second one?" (+ history above)
    Output: "How much does the Pro plan cost?"

Usage:
    from rageval.retrieval.query import QueryRewriter

    rewriter = QueryRewriter()
    standalone = await rewriter.rewrite("How much is the second one?", history)
"""

from anthropic import AsyncAnthropic

from rageval.config import settings
from rageval.evaluation.models import ConversationTurn
from rageval.llm import create_anthropic_client, response_text
from rageval.logging import get_logger

logger = get_logger(__name__, component="query_rewriting")

REWRITE_PROMPT = """You rewrite follow-up questions so they can be understood without the conversation.

Conversation so far:
{history}

Follow-up question:
{question}

Rewrite the follow-up question as a single self-contained question, resolving
pronouns and references using the conversation. Keep the original language.
If it is already self-contained, return it unchanged.

Return ONLY the rewritten question, no explanation."""


def format_history(history: list[ConversationTurn]) -> str:
    return "\n".join(f"{turn.role}: {turn.content}" for turn in history)


class QueryRewriter:
    """
    Rewrite context-dependent questions into standalone ones.

    Uses the fast model: this is a short transformation and runs
    before every retrieval of a follow-up question.

    Example:
        rewriter = QueryRewriter()
        question = await rewriter.rewrite("And the price?", history)
    """

    def __init__(self, model: str | None = None, client: AsyncAnthropic | None = None):
        """
        Initialize the query rewriter.

        Args:
            model: Claude model to use. Defaults to settings.llm_model_fast
            client: Anthropic client to reuse (one is created if omitted)
        """
        self.client = client or create_anthropic_client()
        self.model = model or settings.llm_model_fast

        logger.info("query_rewriter_initialized", model=self.model)

    async def rewrite(self, question: str, history: list[ConversationTurn]) -> str:
        """
        Rewrite a follow-up question using the conversation history.

        Args:
            question: The follow-up question
            history: Prior conversation turns, oldest first

        Returns:
            A self-contained question (the original if nothing came back)

        Raises:
            anthropic.APIError: If the API call fails (the evaluator
                falls back to the original question)
        """
        if not history:
            return question

        logger.debug("rewriting_query", original=question[:50], turns=len(history))

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=200,
            temperature=0.0,
            messages=[{
                "role": "user",
                "content": REWRITE_PROMPT.format(
                    history=format_history(history),
                    question=question,
                ),
            }],
        )

        rewritten = response_text(response).strip().strip('"')
        if not rewritten:
            return question

        logger.debug("query_rewritten", original=question[:50], rewritten=rewritten[:80])
        return rewritten
