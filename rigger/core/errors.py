"""Error taxonomy for the orchestration engine.

ProviderError      - LLM/embedding dispatch failed (timeout, malformed, rate limited)
RetrievalError     - RAG lookup failed; always caught at the retrieval boundary
RepositoryError    - persistence failed; aborts the current flow step
ValidationError    - request rejected before any I/O
"""

from typing import Any


class RiggerError(Exception):
    """Base class for all engine errors."""


class ProviderError(RiggerError):
    """A provider call failed after all permitted attempts."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        attempts: list[Any] | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.attempts = attempts or []
        self.timed_out = timed_out


class RetrievalError(RiggerError):
    """Embedding or similarity search failed during retrieval."""


class RepositoryError(RiggerError):
    """Task or artifact persistence failed."""


class ValidationError(RiggerError):
    """The request is invalid for the current task state."""


class TaskNotFoundError(ValidationError):
    """No task exists with the requested id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTransitionError(ValidationError):
    """A status change is not permitted by the transition table."""

    def __init__(self, from_status: Any, to_status: Any):
        super().__init__(f"Invalid transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status
