"""Tests for the search service with in-memory providers."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_highlight
from readmark.core.config import Settings
from readmark.core.errors import ProviderError, ValidationError
from readmark.retrieval import SearchService


class FakeCorpus:
    def __init__(self, highlights):
        self.highlights = list(highlights)
        self.calls = 0

    def fetch_highlights(self, user_id: str):
        self.calls += 1
        return list(self.highlights)


class FakeEmbedder:
    model_name = "test"
    dim = 4

    def __init__(self, vector=None, delay: float = 0.0, error: Exception | None = None):
        self.vector = vector or [1.0, 0.0, 0.0, 0.0]
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.vector


class FakeSynthesizer:
    provider_name = "fake-chat"

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = []

    async def answer(self, query, context):
        self.calls.append((query, list(context)))
        if self.error is not None:
            raise self.error
        titles = ", ".join(dict.fromkeys(item.book_title for item in context))
        return f"Drawing on {titles}: stay calm."


class FakeHistory:
    def __init__(self):
        self.entries = []

    def record_search(self, user_id, query, answer):
        self.entries.append((user_id, query, answer))


class BrokenHistory:
    def __init__(self):
        self.calls = 0

    def record_search(self, user_id, query, answer):
        self.calls += 1
        raise RuntimeError("disk full")


def _corpus():
    return [
        make_highlight("lexical", content="Keep calm when others panic", minutes=3, book_title="Letters"),
        make_highlight("unrelated", content="Nothing to see", embedding=[0.0, 1.0, 0.0, 0.0], minutes=2),
        make_highlight("second", content="On duty", embedding=[2.0, 4.0, 2.0, 1.0], minutes=1, book_title="Letters"),
        make_highlight("first", content="On nature", embedding=[3.0, 4.0, 0.0, 0.0], minutes=0),
    ]


def _service(corpus=None, embedder=None, synthesizer=None, history=None, **settings):
    return SearchService(
        corpus=corpus if corpus is not None else FakeCorpus(_corpus()),
        embedder=embedder or FakeEmbedder(),
        settings=Settings(**settings),
        synthesizer=synthesizer,
        history=history,
    )


def test_search_orders_semantic_then_lexical_and_answers() -> None:
    synthesizer = FakeSynthesizer()
    history = FakeHistory()
    service = _service(synthesizer=synthesizer, history=history)

    async def scenario():
        outcome = await service.search("usr_test", "  calm  ")
        await service.drain()
        return outcome

    outcome = asyncio.run(scenario())

    assert [item.id for item in outcome.highlights] == ["first", "second", "lexical"]
    assert outcome.total_results == 3
    assert not outcome.lexical_only
    assert "Meditations" in outcome.answer
    assert "Letters" in outcome.answer
    query, context = synthesizer.calls[0]
    assert query == "calm"
    assert [item.content for item in context] == ["On nature", "On duty", "Keep calm when others panic"]
    assert history.entries == [("usr_test", "calm", outcome.answer)]


def test_search_empty_corpus_skips_providers() -> None:
    embedder = FakeEmbedder()
    synthesizer = FakeSynthesizer()
    service = _service(corpus=FakeCorpus([]), embedder=embedder, synthesizer=synthesizer)

    outcome = asyncio.run(service.search("usr_test", "anything"))

    assert outcome.highlights == []
    assert outcome.answer is None
    assert embedder.calls == []
    assert synthesizer.calls == []


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_search_rejects_blank_query(query: str) -> None:
    corpus = FakeCorpus(_corpus())
    embedder = FakeEmbedder()
    service = _service(corpus=corpus, embedder=embedder, synthesizer=FakeSynthesizer())

    with pytest.raises(ValidationError):
        asyncio.run(service.search("usr_test", query))
    assert corpus.calls == 0
    assert embedder.calls == []


def test_search_synthesis_failure_returns_results_without_answer() -> None:
    history = FakeHistory()
    service = _service(synthesizer=FakeSynthesizer(error=ProviderError("fake-chat", "boom")), history=history)

    async def scenario():
        outcome = await service.search("usr_test", "calm")
        await service.drain()
        return outcome

    outcome = asyncio.run(scenario())

    assert [item.id for item in outcome.highlights] == ["first", "second", "lexical"]
    assert outcome.answer is None
    assert history.entries == []


def test_search_embedding_timeout_degrades_to_lexical() -> None:
    service = _service(embedder=FakeEmbedder(delay=1.0), embedding_timeout=0.01)

    outcome = asyncio.run(service.search("usr_test", "calm", use_ai=False))

    assert outcome.lexical_only
    assert [item.id for item in outcome.highlights] == ["lexical"]


def test_search_embedding_error_degrades_to_lexical() -> None:
    service = _service(embedder=FakeEmbedder(error=ProviderError("fake-embedder", "down")))

    outcome = asyncio.run(service.search("usr_test", "calm", use_ai=False))

    assert outcome.lexical_only
    assert [item.id for item in outcome.highlights] == ["lexical"]


def test_search_without_ai_skips_synthesis() -> None:
    synthesizer = FakeSynthesizer()
    history = FakeHistory()
    service = _service(synthesizer=synthesizer, history=history)

    async def scenario():
        outcome = await service.search("usr_test", "calm", use_ai=False)
        await service.drain()
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.answer is None
    assert len(outcome.highlights) == 3
    assert synthesizer.calls == []
    assert history.entries == []


def test_search_without_synthesizer_returns_no_answer() -> None:
    outcome = asyncio.run(_service().search("usr_test", "calm"))
    assert outcome.answer is None
    assert len(outcome.highlights) == 3


def test_search_respects_max_results() -> None:
    corpus = FakeCorpus(
        [make_highlight(f"h{idx}", embedding=[1.0, 0.0, 0.0, 0.0], minutes=idx) for idx in range(30)]
    )
    outcome = asyncio.run(_service(corpus=corpus, search_max_results=5).search("usr_test", "calm", use_ai=False))
    assert [item.id for item in outcome.highlights] == ["h29", "h28", "h27", "h26", "h25"]


def test_search_history_failure_keeps_answer() -> None:
    history = BrokenHistory()
    service = _service(synthesizer=FakeSynthesizer(), history=history)

    async def scenario():
        outcome = await service.search("usr_test", "calm")
        await service.drain()
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.answer is not None
    assert "Meditations" in outcome.answer
    assert len(outcome.highlights) == 3
    assert history.calls == 1
    assert not service._background


def test_search_ignores_embeddings_from_another_model() -> None:
    corpus = FakeCorpus(
        [
            make_highlight("current", embedding=[3.0, 4.0, 0.0, 0.0], minutes=0),
            make_highlight("old_model", embedding=[1.0, 0.0, 0.0, 0.0], minutes=1, embedding_model="legacy"),
        ]
    )
    outcome = asyncio.run(_service(corpus=corpus).search("usr_test", "zzz", use_ai=False))
    assert [item.id for item in outcome.highlights] == ["current"]
