"""Tests for similarity, lexical matching and ranking."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_highlight
from readmark.core.errors import DimensionMismatchError, ProviderError
from readmark.retrieval import cosine_similarity, matches, rank

QUERY = [1.0, 0.0, 0.0, 0.0]


def _embedder(vector, calls=None):
    async def embed(text: str):
        if calls is not None:
            calls.append(text)
        return vector

    return embed


async def _failing_embed(text: str):
    raise ProviderError("fake", "service unavailable")


def test_cosine_identical_vectors() -> None:
    vector = [0.2, -1.5, 3.0, 0.7]
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_cosine_is_symmetric() -> None:
    a = [1.0, 2.0, 3.0]
    b = [-2.0, 0.5, 4.0]
    assert cosine_similarity(a, b) == cosine_similarity(b, a)


def test_cosine_opposite_and_orthogonal() -> None:
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


def test_cosine_zero_vector_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0


def test_cosine_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_lexical_matches_content_and_note() -> None:
    highlight = make_highlight("h1", content="The Obstacle is the Way", note="Marcus on adversity")
    assert matches("obstacle", highlight)
    assert matches("ADVERSITY", highlight)
    assert not matches("courage", highlight)
    assert not matches("", highlight)


def test_lexical_ignores_missing_note() -> None:
    highlight = make_highlight("h1", content="Begin at once to live")
    assert not matches("note", highlight)


def test_rank_is_deterministic() -> None:
    corpus = [
        make_highlight("h1", embedding=[3.0, 4.0, 0.0, 0.0], minutes=1),
        make_highlight("h2", embedding=[2.0, 4.0, 2.0, 1.0], minutes=2),
        make_highlight("h3", embedding=[1.0, 0.0, 0.0, 0.0], minutes=3),
    ]
    first = asyncio.run(rank("query", corpus, _embedder(QUERY)))
    second = asyncio.run(rank("query", list(reversed(corpus)), _embedder(QUERY)))
    assert [item.id for item in first.highlights] == ["h3", "h1", "h2"]
    assert [item.id for item in second.highlights] == ["h3", "h1", "h2"]


def test_rank_similarity_floor_is_exclusive() -> None:
    query = [1.0, 0.0, 0.0, 0.0, 0.0]
    corpus = [
        make_highlight("at_floor", embedding=[3.0, 9.0, 3.0, 1.0, 0.0]),
        make_highlight("above_floor", embedding=[31.0, 95.0, 3.0, 2.0, 1.0]),
    ]
    ranked = asyncio.run(rank("zzz", corpus, _embedder(query)))
    assert [item.id for item in ranked.highlights] == ["above_floor"]
    assert ranked.candidates[0].similarity == pytest.approx(0.31)


def test_rank_caps_results() -> None:
    corpus = [make_highlight(f"h{idx:02d}", embedding=QUERY, minutes=idx) for idx in range(50)]
    ranked = asyncio.run(rank("query", corpus, _embedder(QUERY), max_results=10))
    assert len(ranked.highlights) == 10
    # Equal scores: newest first.
    assert [item.id for item in ranked.highlights] == [f"h{idx:02d}" for idx in range(49, 39, -1)]


def test_rank_tie_breaks_on_id_when_timestamps_match() -> None:
    corpus = [
        make_highlight("b", embedding=QUERY),
        make_highlight("a", embedding=QUERY),
    ]
    ranked = asyncio.run(rank("query", corpus, _embedder(QUERY)))
    assert [item.id for item in ranked.highlights] == ["a", "b"]


def test_rank_semantic_before_lexical_without_duplicates() -> None:
    corpus = [
        make_highlight("lexical", content="Virtue is enough", minutes=5),
        make_highlight("both", content="On virtue and duty", embedding=[3.0, 4.0, 0.0, 0.0], minutes=1),
        make_highlight("semantic", content="Unrelated words", embedding=[2.0, 4.0, 2.0, 1.0], minutes=2),
    ]
    ranked = asyncio.run(rank("virtue", corpus, _embedder(QUERY)))
    assert [item.id for item in ranked.highlights] == ["both", "semantic", "lexical"]
    assert [item.provenance for item in ranked.candidates] == ["semantic", "semantic", "lexical"]


def test_rank_falls_back_to_lexical_when_embedding_fails() -> None:
    corpus = [
        make_highlight("h1", content="Courage is a kind of salvation", embedding=QUERY),
        make_highlight("h2", content="Silence", embedding=QUERY),
    ]
    ranked = asyncio.run(rank("courage", corpus, _failing_embed))
    assert ranked.lexical_only
    assert not ranked.semantic_ran
    assert [item.id for item in ranked.highlights] == ["h1"]


def test_rank_skips_embedding_when_corpus_has_no_vectors() -> None:
    calls: list[str] = []
    corpus = [make_highlight("h1", content="Memento mori")]
    ranked = asyncio.run(rank("memento", corpus, _embedder(QUERY, calls)))
    assert calls == []
    assert not ranked.semantic_ran
    assert not ranked.lexical_only
    assert [item.id for item in ranked.highlights] == ["h1"]


def test_rank_excludes_stale_dimensions() -> None:
    corpus = [
        make_highlight("current", embedding=[3.0, 4.0, 0.0, 0.0]),
        make_highlight("stale", content="old stoic text", embedding=[1.0, 0.0, 0.0]),
    ]
    ranked = asyncio.run(rank("stoic", corpus, _embedder(QUERY), expected_dim=4))
    assert ranked.skipped_embeddings == 1
    assert [item.id for item in ranked.highlights] == ["current", "stale"]
    assert ranked.candidates[1].provenance == "lexical"


def test_rank_empty_corpus() -> None:
    calls: list[str] = []
    ranked = asyncio.run(rank("anything", [], _embedder(QUERY, calls)))
    assert ranked.highlights == []
    assert calls == []


def test_rank_excludes_embeddings_from_another_model() -> None:
    corpus = [
        make_highlight("current", embedding=[3.0, 4.0, 0.0, 0.0], embedding_model="hashed"),
        make_highlight("legacy", embedding=[1.0, 0.0, 0.0, 0.0], embedding_model="ada-002"),
    ]
    ranked = asyncio.run(rank("zzz", corpus, _embedder(QUERY), expected_dim=4, expected_model="hashed"))
    assert ranked.skipped_embeddings == 1
    assert [item.id for item in ranked.highlights] == ["current"]
