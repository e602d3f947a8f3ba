"""Search orchestration."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from readmark.core.config import Settings
from readmark.core.errors import ProviderError, ValidationError
from readmark.core.logging import get_logger
from readmark.core.metrics import (
    CORPUS_SIZE,
    DEGRADED_SEARCHES,
    PROVIDER_FAILURES,
    REQUEST_COUNT,
    REQUEST_LATENCY,
)
from readmark.ingest.embeddings import EmbeddingProvider
from readmark.models.entities import Highlight
from readmark.retrieval.answer import AnswerSynthesizer, context_from_highlights
from readmark.retrieval.ranker import rank
from readmark.utils.text import truncate

logger = get_logger(__name__)


class CorpusReader(Protocol):
    def fetch_highlights(self, user_id: str) -> list[Highlight]: ...


class HistoryWriter(Protocol):
    def record_search(self, user_id: str, query: str, answer: str | None) -> object: ...


@dataclass(slots=True)
class SearchOutcome:
    highlights: list[Highlight] = field(default_factory=list)
    answer: str | None = None
    lexical_only: bool = False

    @property
    def total_results(self) -> int:
        return len(self.highlights)


class SearchService:
    """Runs lexical + semantic retrieval and optional answer synthesis.

    Provider handles are owned by the caller and injected here; the service
    keeps no state between searches apart from in-flight history writes.
    """

    def __init__(
        self,
        corpus: CorpusReader,
        embedder: EmbeddingProvider,
        settings: Settings,
        synthesizer: AnswerSynthesizer | None = None,
        history: HistoryWriter | None = None,
    ) -> None:
        self.corpus = corpus
        self.embedder = embedder
        self.settings = settings
        self.synthesizer = synthesizer
        self.history = history
        self._background: set[asyncio.Task] = set()

    async def search(self, user_id: str, query: str, use_ai: bool = True) -> SearchOutcome:
        start_time = time.perf_counter()
        query = (query or "").strip()
        if not query:
            logger.debug("Rejected empty search query", extra={"ctx_user_id": user_id})
            raise ValidationError("Query is required")

        corpus = self.corpus.fetch_highlights(user_id)
        CORPUS_SIZE.set(len(corpus))
        if not corpus:
            self._observe(start_time)
            return SearchOutcome()

        ranked = await rank(
            query,
            corpus,
            self._embed_query,
            max_results=self.settings.search_max_results,
            similarity_floor=self.settings.similarity_floor,
            expected_dim=self.embedder.dim,
            expected_model=self.embedder.model_name,
        )
        if ranked.lexical_only:
            DEGRADED_SEARCHES.inc()

        outcome = SearchOutcome(highlights=ranked.highlights, lexical_only=ranked.lexical_only)
        if use_ai and outcome.highlights:
            outcome.answer = await self._synthesize(user_id, query, outcome.highlights)

        self._observe(start_time)
        return outcome

    async def drain(self) -> None:
        """Wait for pending history writes, e.g. at shutdown."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------

    async def _embed_query(self, text: str) -> list[float]:
        provider = self.embedder.model_name
        try:
            return await asyncio.wait_for(self.embedder.embed(text), timeout=self.settings.embedding_timeout)
        except asyncio.TimeoutError as exc:
            PROVIDER_FAILURES.labels(provider=provider).inc()
            raise ProviderError(provider, f"timed out after {self.settings.embedding_timeout}s") from exc
        except Exception:
            PROVIDER_FAILURES.labels(provider=provider).inc()
            raise

    async def _synthesize(self, user_id: str, query: str, highlights: Sequence[Highlight]) -> str | None:
        if self.synthesizer is None:
            logger.info("AI answer requested but no answer provider is configured")
            return None
        provider = getattr(self.synthesizer, "provider_name", type(self.synthesizer).__name__)
        try:
            answer = await asyncio.wait_for(
                self.synthesizer.answer(query, context_from_highlights(highlights)),
                timeout=self.settings.answer_timeout,
            )
        except Exception as exc:
            PROVIDER_FAILURES.labels(provider=provider).inc()
            logger.error(
                "Answer synthesis failed: %s",
                str(exc) or type(exc).__name__,
                extra={"ctx_provider": provider, "ctx_query": truncate(query)},
            )
            return None
        self._spawn_history(user_id, query, answer)
        return answer

    def _spawn_history(self, user_id: str, query: str, answer: str) -> None:
        if self.history is None:
            return
        task = asyncio.get_running_loop().create_task(self._record_history(user_id, query, answer))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _record_history(self, user_id: str, query: str, answer: str) -> None:
        try:
            self.history.record_search(user_id, query, answer)
        except Exception:
            logger.exception("Failed to record search history", extra={"ctx_query": truncate(query)})

    def _observe(self, start_time: float) -> None:
        REQUEST_LATENCY.labels(endpoint="search", method="POST").observe(time.perf_counter() - start_time)
        REQUEST_COUNT.labels(endpoint="search", method="POST", status="200").inc()


__all__ = ["CorpusReader", "HistoryWriter", "SearchOutcome", "SearchService"]
