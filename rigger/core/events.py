"""Transition event publishers.

The orchestration flow publishes one TaskTransitionEvent per committed
status change. Publishing is best-effort: the flow logs and ignores any
exception raised here.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Union

from rigger.core.logging import get_logger
from rigger.core.schemas_tasks import TaskTransitionEvent

logger = get_logger(__name__)

Subscriber = Callable[[TaskTransitionEvent], Union[None, Awaitable[None]]]


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event: TaskTransitionEvent) -> None:
        """Deliver an event to whatever broadcasts it (gRPC stream, TUI, ...)."""


class LoggingEventPublisher(EventPublisher):
    """Writes each transition to the log."""

    async def publish(self, event: TaskTransitionEvent) -> None:
        logger.info(
            f"Task {event.task_id}: {event.old_status.value} -> {event.new_status.value}",
            extra={"task_id": event.task_id, "extra_data": {"at": event.timestamp.isoformat()}},
        )


class InMemoryEventPublisher(EventPublisher):
    """Keeps every event and fans it out to registered subscribers."""

    def __init__(self):
        self.events: list[TaskTransitionEvent] = []
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    async def publish(self, event: TaskTransitionEvent) -> None:
        self.events.append(event)
        for callback in self._subscribers:
            result = callback(event)
            if inspect.isawaitable(result):
                await result

    def for_task(self, task_id: str) -> list[TaskTransitionEvent]:
        return [e for e in self.events if e.task_id == task_id]
