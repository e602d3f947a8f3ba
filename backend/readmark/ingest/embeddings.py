"""Embedding providers."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Iterable, Protocol

from openai import AsyncOpenAI, OpenAIError

from readmark.core.errors import ProviderError

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    @property
    def model_name(self) -> str: ...

    @property
    def dim(self) -> int: ...

    async def embed(self, text: str) -> list[float]: ...


class EmbeddingModel:
    """Lightweight hashed embedding model with deterministic output."""

    _instances: dict[tuple[str, int], "EmbeddingModel"] = {}

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self._model_name = model_name
        self._dim = dim

    @classmethod
    def get(cls, model_name: str, dim: int = 384) -> "EmbeddingModel":
        key = (model_name or "hashed", dim)
        if key not in cls._instances:
            cls._instances[key] = EmbeddingModel(model_name=key[0], dim=dim)
        return cls._instances[key]

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dim(self) -> int:
        return self._dim

    def encode(self, texts: Iterable[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors

    async def embed(self, text: str) -> list[float]:
        return self.encode([text])[0]


class OpenAIEmbedder:
    """OpenAI embeddings endpoint behind the provider interface."""

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, client: AsyncOpenAI, model: str = "text-embedding-3-small") -> None:
        self._client = client
        self._model = model
        self._dim = self.DIMENSIONS.get(model, 1536)

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dim(self) -> int:
        return self._dim

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(model=self._model, input=text)
        except OpenAIError as exc:
            raise ProviderError("openai-embeddings", str(exc)) from exc
        if not response.data:
            raise ProviderError("openai-embeddings", "empty embedding response")
        return list(response.data[0].embedding)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["EmbeddingModel", "EmbeddingProvider", "OpenAIEmbedder"]
