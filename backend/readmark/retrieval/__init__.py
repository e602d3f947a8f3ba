"""Retrieval orchestration components."""

from .answer import AnswerContext, AnswerSynthesizer, OpenAIAnswerSynthesizer
from .lexical import matches
from .ranker import Candidate, RankedHighlights, rank
from .search import SearchOutcome, SearchService
from .similarity import cosine_similarity

__all__ = [
    "AnswerContext",
    "AnswerSynthesizer",
    "Candidate",
    "OpenAIAnswerSynthesizer",
    "RankedHighlights",
    "SearchOutcome",
    "SearchService",
    "cosine_similarity",
    "matches",
    "rank",
]
