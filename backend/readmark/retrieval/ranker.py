"""Hybrid lexical + semantic ranking over a user's highlights."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Literal, Sequence

from readmark.core.logging import get_logger
from readmark.models.entities import Highlight
from readmark.retrieval.lexical import matches
from readmark.retrieval.similarity import cosine_similarity
from readmark.utils.text import truncate

logger = get_logger(__name__)

EmbedFn = Callable[[str], Awaitable[Sequence[float]]]
_Embedded = tuple[Highlight, list[float]]

DEFAULT_MAX_RESULTS = 10
DEFAULT_SIMILARITY_FLOOR = 0.3


@dataclass(slots=True)
class Candidate:
    highlight: Highlight
    provenance: Literal["semantic", "lexical"]
    similarity: float | None = None


@dataclass(slots=True)
class RankedHighlights:
    candidates: list[Candidate] = field(default_factory=list)
    lexical_only: bool = False
    semantic_ran: bool = False
    skipped_embeddings: int = 0

    @property
    def highlights(self) -> list[Highlight]:
        return [candidate.highlight for candidate in self.candidates]


async def rank(
    query: str,
    corpus: Sequence[Highlight],
    embed: EmbedFn,
    max_results: int = DEFAULT_MAX_RESULTS,
    similarity_floor: float = DEFAULT_SIMILARITY_FLOOR,
    expected_dim: int | None = None,
    expected_model: str | None = None,
) -> RankedHighlights:
    """Rank ``corpus`` against ``query``.

    Semantic hits (similarity strictly above ``similarity_floor``) come first,
    ordered by similarity, then newest ``created_at``, then id. Lexical-only
    hits follow in corpus order until ``max_results`` is reached. If ``embed``
    fails the result degrades to lexical matches and ``lexical_only`` is set.

    Embeddings whose length differs from ``expected_dim``, or whose recorded
    model differs from ``expected_model``, are stale: they are never scored
    and are counted in ``skipped_embeddings``.
    """
    outcome = RankedHighlights()
    if not corpus or max_results <= 0:
        return outcome

    embedded: list[_Embedded] = []
    for item in corpus:
        if not item.embedding:
            continue
        if _is_stale(item, expected_dim, expected_model):
            outcome.skipped_embeddings += 1
            continue
        embedded.append((item, item.embedding))

    semantic: list[Candidate] = []
    if embedded:
        try:
            query_vector = list(await embed(query))
        except Exception as exc:
            logger.error(
                "Embedding failed; falling back to lexical ranking: %s",
                exc,
                extra={"ctx_provider": getattr(exc, "provider", "embedding"), "ctx_query": truncate(query)},
            )
            outcome.lexical_only = True
        else:
            outcome.semantic_ran = True
            semantic, skipped = _score(query_vector, embedded, similarity_floor)
            outcome.skipped_embeddings += skipped
            semantic = semantic[:max_results]
    if outcome.skipped_embeddings:
        logger.warning(
            "Skipped %s highlights with stale embeddings",
            outcome.skipped_embeddings,
            extra={"ctx_expected_dim": expected_dim, "ctx_expected_model": expected_model},
        )

    outcome.candidates = _merge(query, corpus, semantic, max_results)
    return outcome


def _is_stale(highlight: Highlight, expected_dim: int | None, expected_model: str | None) -> bool:
    if expected_dim is not None and len(highlight.embedding or ()) != expected_dim:
        return True
    return bool(expected_model and highlight.embedding_model and highlight.embedding_model != expected_model)


def _score(
    query_vector: Sequence[float],
    embedded: Sequence[_Embedded],
    similarity_floor: float,
) -> tuple[list[Candidate], int]:
    scored: list[Candidate] = []
    skipped = 0
    for highlight, vector in embedded:
        if len(vector) != len(query_vector):
            skipped += 1
            continue
        score = cosine_similarity(query_vector, vector)
        if score > similarity_floor:
            scored.append(Candidate(highlight=highlight, provenance="semantic", similarity=score))
    # Ties: newest first, then id ascending.
    scored.sort(key=lambda item: item.highlight.id)
    scored.sort(key=lambda item: (item.similarity, _timestamp(item.highlight.created_at)), reverse=True)
    return scored, skipped


def _merge(
    query: str,
    corpus: Sequence[Highlight],
    semantic: list[Candidate],
    max_results: int,
) -> list[Candidate]:
    merged = list(semantic)
    seen = {candidate.highlight.id for candidate in merged}
    for highlight in corpus:
        if len(merged) >= max_results:
            break
        if highlight.id in seen or not matches(query, highlight):
            continue
        merged.append(Candidate(highlight=highlight, provenance="lexical"))
        seen.add(highlight.id)
    return merged


def _timestamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else float("-inf")


__all__ = [
    "Candidate",
    "DEFAULT_MAX_RESULTS",
    "DEFAULT_SIMILARITY_FLOOR",
    "EmbedFn",
    "RankedHighlights",
    "rank",
]
