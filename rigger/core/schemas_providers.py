"""Schemas shared by the provider registry and the task revision log."""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DispatchAttempt(BaseModel):
    """Outcome of one provider call made on behalf of a slot."""

    slot: str
    provider: str
    model: str
    succeeded: bool
    error: str | None = None
    timed_out: bool = False
    elapsed_ms: int = 0


@dataclass
class DispatchResult(Generic[T]):
    """Successful dispatch value plus every attempt made to obtain it."""

    value: T
    attempts: list[DispatchAttempt] = field(default_factory=list)

    @property
    def failed_attempts(self) -> list[DispatchAttempt]:
        return [a for a in self.attempts if not a.succeeded]

    @property
    def used_fallback(self) -> bool:
        return any(a.slot == "fallback" and a.succeeded for a in self.attempts)

    @property
    def served_by(self) -> DispatchAttempt | None:
        for attempt in self.attempts:
            if attempt.succeeded:
                return attempt
        return None


def summarize_attempts(attempts: list[DispatchAttempt]) -> list[dict[str, Any]]:
    """Compact attempt dicts for structured log lines."""
    return [
        {
            "slot": a.slot,
            "provider": a.provider,
            "ok": a.succeeded,
            "error": a.error,
        }
        for a in attempts
    ]


@dataclass
class GenerationResult(Generic[T]):
    """Parsed chain output with the dispatch attempts and parse warnings behind it."""

    value: T
    attempts: list[DispatchAttempt] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed_attempts(self) -> list[DispatchAttempt]:
        return [a for a in self.attempts if not a.succeeded]
