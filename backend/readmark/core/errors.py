"""Domain error taxonomy."""

from __future__ import annotations


class ReadmarkError(Exception):
    """Base class for errors raised by Readmark services."""


class ValidationError(ReadmarkError):
    """Malformed or empty user input."""


class AuthenticationError(ReadmarkError):
    """Missing, unknown or expired credentials."""


class AuthorizationError(ReadmarkError):
    """Credentials are valid but lack the required scope."""


class CorpusReadError(ReadmarkError):
    """The highlight corpus could not be loaded."""


class ProviderError(ReadmarkError):
    """An embedding or answer provider call failed or timed out."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class DimensionMismatchError(ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimension mismatch: {left} != {right}")
        self.left = left
        self.right = right


__all__ = [
    "ReadmarkError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "CorpusReadError",
    "ProviderError",
    "DimensionMismatchError",
]
