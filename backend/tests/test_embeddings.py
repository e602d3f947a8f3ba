"""Tests for embedding utilities."""

import asyncio

from readmark.ingest.embeddings import EmbeddingModel
from readmark.ingest.enrich import embed_highlight, highlight_text


class BrokenProvider:
    model_name = "broken"
    dim = 4

    async def embed(self, text: str):
        raise RuntimeError("connection reset")


class WrongSizeProvider:
    model_name = "wrong-size"
    dim = 4

    async def embed(self, text: str):
        return [1.0, 0.0]


def test_hashed_model_vectors_are_normalized() -> None:
    model = EmbeddingModel.get("hashed", dim=64)
    vectors = model.encode(["hello world", "the quick brown fox"])
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6


def test_hashed_model_is_deterministic_and_cached() -> None:
    model = EmbeddingModel.get("hashed", dim=32)
    assert EmbeddingModel.get("hashed", dim=32) is model
    assert asyncio.run(model.embed("Seneca on time")) == model.encode(["Seneca on time"])[0]


def test_hashed_model_empty_text_is_zero_vector() -> None:
    model = EmbeddingModel.get("hashed", dim=16)
    assert model.encode([""])[0] == [0.0] * 16


def test_highlight_text_includes_note() -> None:
    assert highlight_text("quote") == "quote"
    assert highlight_text("quote", "my note") == "quote\n\nmy note"


def test_embed_highlight_returns_vector_and_model() -> None:
    model = EmbeddingModel.get("hashed", dim=8)
    result = asyncio.run(embed_highlight(model, "Luck is preparation", "note"))
    assert result is not None
    assert result.model == "hashed"
    assert len(result.vector) == 8


def test_embed_highlight_swallows_provider_failure() -> None:
    assert asyncio.run(embed_highlight(BrokenProvider(), "content")) is None


def test_embed_highlight_rejects_wrong_dimension() -> None:
    assert asyncio.run(embed_highlight(WrongSizeProvider(), "content")) is None
