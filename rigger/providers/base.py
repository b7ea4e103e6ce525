"""Provider capability interfaces.

An adapter implements TextGenerator, EmbeddingGenerator, or both. The
registry binds adapter instances to slots once, at construction time.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, TypeVar

from rigger.core.errors import ProviderError

T = TypeVar("T")


class ProviderAdapter(ABC):
    """Common identity for all provider adapters."""

    name: str = "provider"


class TextGenerator(ProviderAdapter):
    """Capability: prompt in, completion text out."""

    @abstractmethod
    async def generate_text(self, prompt: str, model: str, timeout: float) -> str:
        """Generate a completion. Raises ProviderError on any failure."""


class EmbeddingGenerator(ProviderAdapter):
    """Capability: text in, fixed-dimension vector out."""

    @abstractmethod
    async def generate_embedding(self, text: str, model: str, timeout: float) -> list[float]:
        """Embed text. Raises ProviderError on any failure."""


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    provider: str,
    model: str,
) -> T:
    """
    Await a provider call, translating timeouts and SDK errors to ProviderError.

    Partial output from a timed-out call is discarded.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except ProviderError:
        raise
    except asyncio.TimeoutError as e:
        raise ProviderError(
            f"{provider}/{model} timed out after {timeout}s",
            provider=provider,
            model=model,
            timed_out=True,
        ) from e
    except Exception as e:
        raise ProviderError(
            f"{provider}/{model} failed: {type(e).__name__}: {e}",
            provider=provider,
            model=model,
        ) from e


def require_text(content: object, provider: str, model: str) -> str:
    """Reject empty or non-string completions as malformed."""
    if not isinstance(content, str) or not content.strip():
        raise ProviderError(
            f"{provider}/{model} returned an empty or malformed completion",
            provider=provider,
            model=model,
        )
    return content


def require_vector(vector: object, provider: str, model: str) -> list[float]:
    """Reject empty or non-numeric embeddings as malformed."""
    if not isinstance(vector, (list, tuple)) or not vector:
        raise ProviderError(
            f"{provider}/{model} returned an empty or malformed embedding",
            provider=provider,
            model=model,
        )
    try:
        return [float(x) for x in vector]
    except (TypeError, ValueError) as e:
        raise ProviderError(
            f"{provider}/{model} returned non-numeric embedding values",
            provider=provider,
            model=model,
        ) from e
