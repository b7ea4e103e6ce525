"""Anthropic adapter: text generation through the Messages API."""

from anthropic import AsyncAnthropic

from rigger.providers.base import TextGenerator, call_with_timeout, require_text

DEFAULT_MAX_TOKENS = 2048


class AnthropicProvider(TextGenerator):
    """Text generation against the Anthropic API. Has no embedding endpoint."""

    name = "anthropic"

    def __init__(self, api_key: str | None, max_tokens: int = DEFAULT_MAX_TOKENS, temperature: float = 0.1):
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client: AsyncAnthropic | None = None

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    async def generate_text(self, prompt: str, model: str, timeout: float) -> str:
        response = await call_with_timeout(
            self._get_client().messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            ),
            timeout,
            self.name,
            model,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return require_text(text, self.name, model)
