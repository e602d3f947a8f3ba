"""Embedding enrichment for highlights at write time."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from readmark.core.logging import get_logger
from readmark.core.metrics import PROVIDER_FAILURES
from readmark.ingest.embeddings import EmbeddingProvider

logger = get_logger(__name__)


@dataclass(slots=True)
class HighlightEmbedding:
    vector: list[float]
    model: str


def highlight_text(content: str, note: str | None = None) -> str:
    """Text that represents a highlight in embedding space."""
    if note:
        return f"{content}\n\n{note}"
    return content


async def embed_highlight(
    provider: EmbeddingProvider,
    content: str,
    note: str | None = None,
    timeout: float = 10.0,
) -> HighlightEmbedding | None:
    """Embed a highlight, returning ``None`` when the provider fails.

    The highlight is still stored without a vector; it stays reachable
    through lexical matching until it is re-embedded on the next edit.
    """
    try:
        vector = await asyncio.wait_for(provider.embed(highlight_text(content, note)), timeout=timeout)
    except Exception as exc:
        PROVIDER_FAILURES.labels(provider=provider.model_name).inc()
        logger.warning("Highlight embedding failed: %s", exc, extra={"ctx_provider": provider.model_name})
        return None
    if len(vector) != provider.dim:
        logger.warning(
            "Discarding embedding with unexpected dimension %s (expected %s)",
            len(vector),
            provider.dim,
        )
        return None
    return HighlightEmbedding(vector=list(vector), model=provider.model_name)


__all__ = ["HighlightEmbedding", "embed_highlight", "highlight_text"]
