"""OpenAI adapter: chat completions through LangChain, embeddings through the SDK."""

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI
from openai import AsyncOpenAI

from rigger.core.logging import get_logger
from rigger.providers.base import (
    EmbeddingGenerator,
    TextGenerator,
    call_with_timeout,
    require_text,
    require_vector,
)

logger = get_logger(__name__)


class OpenAIProvider(TextGenerator, EmbeddingGenerator):
    """Text generation and embeddings against the OpenAI API."""

    name = "openai"

    def __init__(self, api_key: str | None, temperature: float = 0.1):
        self.api_key = api_key
        self.temperature = temperature
        self._client: AsyncOpenAI | None = None

    def _get_llm(self, model: str, timeout: float) -> ChatOpenAI:
        return ChatOpenAI(
            api_key=self.api_key,
            model=model,
            temperature=self.temperature,
            timeout=timeout,
            max_retries=0,
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def generate_text(self, prompt: str, model: str, timeout: float) -> str:
        llm = self._get_llm(model, timeout)
        messages = [HumanMessage(content=prompt)]
        response = await call_with_timeout(llm.ainvoke(messages), timeout, self.name, model)
        return require_text(response.content, self.name, model)

    async def _embed(self, text: str, model: str, timeout: float) -> list[float]:
        response = await self._get_client().embeddings.create(model=model, input=[text], timeout=timeout)
        return response.data[0].embedding

    async def generate_embedding(self, text: str, model: str, timeout: float) -> list[float]:
        vector = require_vector(
            await call_with_timeout(self._embed(text, model, timeout), timeout, self.name, model),
            self.name,
            model,
        )
        logger.debug(f"Generated embedding using {model}", extra={"extra_data": {"dim": len(vector)}})
        return vector
