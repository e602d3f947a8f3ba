"""Grounded answer synthesis over retrieved highlights."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from readmark.core.errors import ProviderError
from readmark.models.entities import Highlight

FALLBACK_ANSWER = "I could not generate an answer from your highlights."

SYSTEM_PROMPT = (
    "You are a reading assistant that answers questions using only the book "
    "highlights a user has saved. Be accurate and concise, and say so when the "
    "highlights do not contain the answer."
)


@dataclass(slots=True)
class AnswerContext:
    content: str
    note: str | None
    book_title: str


class AnswerSynthesizer(Protocol):
    async def answer(self, query: str, context: Sequence[AnswerContext]) -> str: ...


def context_from_highlights(highlights: Sequence[Highlight]) -> list[AnswerContext]:
    return [
        AnswerContext(
            content=item.content,
            note=item.note,
            book_title=item.book.title if item.book else "Unknown book",
        )
        for item in highlights
    ]


def build_answer_prompt(query: str, context: Sequence[AnswerContext]) -> str:
    """Render the numbered highlight context followed by the question."""
    blocks = []
    for idx, item in enumerate(context, start=1):
        block = f'[{idx}] Book: "{item.book_title}"\nQuote: "{item.content}"'
        if item.note:
            block += f'\nNote: "{item.note}"'
        blocks.append(block)
    joined = "\n\n".join(blocks)
    return (
        "Answer the question using the highlights from books the user has read.\n\n"
        f"Relevant highlights:\n{joined}\n\n"
        f"Question: {query}\n\n"
        "Cite the book each point comes from by its title, refer to highlights by "
        "their [number], and answer in the language of the question."
    )


class OpenAIAnswerSynthesizer:
    """Chat-completion backed answer synthesizer."""

    provider_name = "openai-chat"

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini", temperature: float = 0.5) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature

    async def answer(self, query: str, context: Sequence[AnswerContext]) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_answer_prompt(query, context)},
                ],
                temperature=self.temperature,
            )
        except OpenAIError as exc:
            raise ProviderError(self.provider_name, str(exc)) from exc
        if not response.choices:
            return FALLBACK_ANSWER
        return response.choices[0].message.content or FALLBACK_ANSWER


__all__ = [
    "AnswerContext",
    "AnswerSynthesizer",
    "FALLBACK_ANSWER",
    "OpenAIAnswerSynthesizer",
    "build_answer_prompt",
    "context_from_highlights",
]
