"""Provider registry: slot bindings and single-step fallback.

Slots (main, research, fallback, embedding, vision, chat_agent) are bound
to adapter instances once, when the registry is built. A dispatch tries the
slot's own binding first and, on any failure, the fallback slot exactly
once before raising ProviderError with every attempt attached.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from rigger.core.config import SLOT_NAMES, Settings, get_settings
from rigger.core.errors import ProviderError
from rigger.core.logging import get_logger, log_with_context
from rigger.core.schemas_providers import DispatchAttempt, DispatchResult, summarize_attempts
from rigger.providers.base import EmbeddingGenerator, ProviderAdapter, TextGenerator

logger = get_logger(__name__)

FALLBACK_SLOT = "fallback"
EMBEDDING_SLOT = "embedding"


@dataclass(frozen=True)
class SlotBinding:
    """A slot resolved to a concrete adapter and model."""

    slot: str
    adapter: ProviderAdapter
    model: str
    enabled: bool = True

    @property
    def provider(self) -> str:
        return self.adapter.name


class ProviderRegistry:
    """Routes text and embedding requests to slot bindings with fallback."""

    def __init__(
        self,
        bindings: dict[str, SlotBinding],
        text_timeout: float = 60.0,
        embedding_timeout: float = 30.0,
    ):
        unknown = set(bindings) - set(SLOT_NAMES)
        if unknown:
            raise ValueError(f"Unknown task slots: {sorted(unknown)}")
        self._bindings = dict(bindings)
        self.text_timeout = text_timeout
        self.embedding_timeout = embedding_timeout

    def binding(self, slot: str) -> SlotBinding | None:
        return self._bindings.get(slot)

    @property
    def slots(self) -> dict[str, SlotBinding]:
        return dict(self._bindings)

    async def dispatch_text(
        self,
        slot: str,
        prompt: str,
        timeout: float | None = None,
    ) -> DispatchResult[str]:
        """Generate text on a slot, falling back once on failure."""

        async def _call(binding: SlotBinding, call_timeout: float) -> str:
            return await binding.adapter.generate_text(prompt, binding.model, call_timeout)

        return await self._dispatch(
            slot,
            capability=TextGenerator,
            call=_call,
            timeout=timeout or self.text_timeout,
        )

    async def dispatch_embedding(
        self,
        text: str,
        timeout: float | None = None,
    ) -> DispatchResult[list[float]]:
        """Embed text on the embedding slot, falling back once if the fallback can embed."""

        async def _call(binding: SlotBinding, call_timeout: float) -> list[float]:
            return await binding.adapter.generate_embedding(text, binding.model, call_timeout)

        return await self._dispatch(
            EMBEDDING_SLOT,
            capability=EmbeddingGenerator,
            call=_call,
            timeout=timeout or self.embedding_timeout,
        )

    def _candidates(self, slot: str, capability: type) -> list[tuple[str, SlotBinding | None]]:
        order = [slot]
        if slot != FALLBACK_SLOT:
            fallback = self._bindings.get(FALLBACK_SLOT)
            # Only fall back to an adapter that offers the same capability
            if fallback is not None and isinstance(fallback.adapter, capability):
                order.append(FALLBACK_SLOT)
        return [(name, self._bindings.get(name)) for name in order]

    async def _dispatch(
        self,
        slot: str,
        capability: type,
        call: Callable[[SlotBinding, float], Awaitable[Any]],
        timeout: float,
    ) -> DispatchResult[Any]:
        attempts: list[DispatchAttempt] = []
        last_error: ProviderError | None = None

        for attempt_slot, binding in self._candidates(slot, capability):
            if binding is None or not binding.enabled or not isinstance(binding.adapter, capability):
                reason = (
                    "not configured" if binding is None
                    else "disabled" if not binding.enabled
                    else f"{binding.provider} does not support {capability.__name__}"
                )
                attempts.append(DispatchAttempt(
                    slot=attempt_slot,
                    provider=binding.provider if binding else "none",
                    model=binding.model if binding else "none",
                    succeeded=False,
                    error=f"slot {attempt_slot} {reason}",
                ))
                last_error = ProviderError(f"slot {attempt_slot} {reason}")
                continue

            started = time.monotonic()
            try:
                value = await call(binding, timeout)
            except Exception as e:
                error = e if isinstance(e, ProviderError) else ProviderError(
                    f"{binding.provider}/{binding.model} failed: {type(e).__name__}: {e}",
                    provider=binding.provider,
                    model=binding.model,
                )
                attempts.append(DispatchAttempt(
                    slot=attempt_slot,
                    provider=binding.provider,
                    model=binding.model,
                    succeeded=False,
                    error=str(error),
                    timed_out=error.timed_out,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                ))
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Dispatch attempt on slot {attempt_slot} failed: {error}",
                    slot=attempt_slot,
                    provider=binding.provider,
                    model=binding.model,
                    timed_out=error.timed_out,
                )
                last_error = error
                continue

            attempts.append(DispatchAttempt(
                slot=attempt_slot,
                provider=binding.provider,
                model=binding.model,
                succeeded=True,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            ))
            logger.debug(
                f"Dispatch on slot {attempt_slot} succeeded via {binding.provider}/{binding.model}",
                extra={"extra_data": {"requested_slot": slot, "attempts": len(attempts)}},
            )
            return DispatchResult(value=value, attempts=attempts)

        logger.error(
            f"All providers exhausted for slot {slot}",
            extra={"extra_data": {"attempts": summarize_attempts(attempts)}},
        )
        raise ProviderError(
            f"All providers exhausted for slot {slot}: {last_error}",
            provider=last_error.provider if last_error else None,
            model=last_error.model if last_error else None,
            attempts=attempts,
            timed_out=bool(last_error and last_error.timed_out),
        )


# =============================================================================
# Construction from settings
# =============================================================================


def create_adapter(provider: str, settings: Settings) -> ProviderAdapter:
    """Instantiate the adapter for a provider name."""
    if provider == "ollama":
        from rigger.providers.ollama_provider import OllamaProvider

        return OllamaProvider(base_url=settings.OLLAMA_BASE_URL)
    if provider == "openai":
        from rigger.providers.openai_provider import OpenAIProvider

        return OpenAIProvider(api_key=settings.OPENAI_API_KEY)
    if provider == "anthropic":
        from rigger.providers.anthropic_provider import AnthropicProvider

        return AnthropicProvider(api_key=settings.ANTHROPIC_API_KEY)
    raise ValueError(f"Unsupported provider: {provider}")


def build_registry(settings: Settings | None = None) -> ProviderRegistry:
    """
    Resolve every slot in settings to an adapter instance.

    Slots that name the same provider share one adapter instance.
    """
    settings = settings or get_settings()
    adapters: dict[str, ProviderAdapter] = {}
    bindings: dict[str, SlotBinding] = {}

    for slot in SLOT_NAMES:
        provider, model, enabled = settings.slot_config(slot)
        if provider not in adapters:
            adapters[provider] = create_adapter(provider, settings)
        bindings[slot] = SlotBinding(slot=slot, adapter=adapters[provider], model=model, enabled=enabled)

    logger.info(
        "Built provider registry",
        extra={"extra_data": {slot: f"{b.provider}/{b.model}" for slot, b in bindings.items()}},
    )

    return ProviderRegistry(
        bindings,
        text_timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        embedding_timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
    )
