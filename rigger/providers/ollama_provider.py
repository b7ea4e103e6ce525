"""Ollama adapter: local text generation and embeddings over HTTP."""

import httpx

from rigger.providers.base import (
    EmbeddingGenerator,
    TextGenerator,
    call_with_timeout,
    require_text,
    require_vector,
)


class OllamaProvider(TextGenerator, EmbeddingGenerator):
    """Talks to an Ollama server's /api/generate and /api/embeddings endpoints."""

    name = "ollama"

    def __init__(self, base_url: str = "http://localhost:11434", transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _post(self, path: str, payload: dict, timeout: float) -> dict:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=self._transport
        ) as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()
            return response.json()

    async def generate_text(self, prompt: str, model: str, timeout: float) -> str:
        data = await call_with_timeout(
            self._post("/api/generate", {"model": model, "prompt": prompt, "stream": False}, timeout),
            timeout,
            self.name,
            model,
        )
        return require_text(data.get("response"), self.name, model)

    async def generate_embedding(self, text: str, model: str, timeout: float) -> list[float]:
        data = await call_with_timeout(
            self._post("/api/embeddings", {"model": model, "prompt": text}, timeout),
            timeout,
            self.name,
            model,
        )
        return require_vector(data.get("embedding"), self.name, model)
