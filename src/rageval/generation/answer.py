"""
Answer generation from retrieved chunks.

Mirrors the application's answer step: the model sees the question and
the retrieved chunks and must answer from them only, saying so when the
context does not contain the answer (which is what unanswerable
questions in the evaluation set test for).

Usage:
    from rageval.generation.answer import AnswerGenerator

    generator = AnswerGenerator()
    answer = await generator.generate(question, chunks, temperature=0.3)
"""

from anthropic import AsyncAnthropic

from rageval.config import settings
from rageval.evaluation.exceptions import ModelCallError
from rageval.evaluation.models import RetrievedChunk
from rageval.llm import create_anthropic_client, response_text
from rageval.logging import get_logger

logger = get_logger(__name__, component="generation")

SYSTEM_PROMPT = """You are a helpful assistant answering questions from a knowledge base.

Rules:
1. Answer ONLY from the provided context
2. If the context does not contain the answer, say that you don't know
3. Be concise and answer the question directly
4. Do not invent details that are not in the context"""

NO_CONTEXT_NOTE = "(No relevant documents were found.)"


def build_user_prompt(question: str, chunks: list[RetrievedChunk]) -> str:
    if chunks:
        context = "\n\n".join(
            f"[{i}] {chunk.content}" for i, chunk in enumerate(chunks, 1)
        )
    else:
        context = NO_CONTEXT_NOTE

    return f"## Context\n{context}\n\n## Question\n{question}"


class AnswerGenerator:
    """
    Generate an answer grounded in retrieved chunks.

    Uses the main (larger) model, same as the serving path.

    Example:
        generator = AnswerGenerator()
        answer = await generator.generate("What is the refund window?", chunks)
    """

    def __init__(
        self,
        model: str | None = None,
        client: AsyncAnthropic | None = None,
        max_tokens: int = 1024,
    ):
        """
        Initialize the generator.

        Args:
            model: Claude model to use. Defaults to settings.llm_model
            client: Anthropic client to reuse (one is created if omitted)
            max_tokens: Answer length limit
        """
        self.client = client or create_anthropic_client()
        self.model = model or settings.llm_model
        self.max_tokens = max_tokens

        logger.info("answer_generator_initialized", model=self.model)

    async def generate(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        *,
        temperature: float = 0.3,
    ) -> str:
        """
        Answer the question from the chunks.

        Raises:
            anthropic.APIError: If the API call fails
            ModelCallError: If the model returns no text
        """
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_user_prompt(question, chunks)}],
        )

        answer = response_text(response)
        if not answer:
            raise ModelCallError("Generation returned an empty answer")

        logger.debug("answer_generated", question=question[:50], length=len(answer))
        return answer
