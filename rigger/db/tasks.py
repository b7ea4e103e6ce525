"""Task repository boundary and an in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod

from rigger.core.errors import RepositoryError
from rigger.core.schemas_tasks import Page, Task, TaskFilter, TaskSort, TaskSortKey


class TaskRepository(ABC):
    """Durable task storage. Each save of a single task is atomic."""

    @abstractmethod
    async def save(self, task: Task) -> None:
        """Insert or replace a task. Raises RepositoryError on failure."""

    @abstractmethod
    async def find_by_id(self, task_id: str) -> Task | None:
        """Return the task or None. Raises RepositoryError on failure."""

    @abstractmethod
    async def find_by_filter(
        self,
        task_filter: TaskFilter | None = None,
        sort: TaskSort | None = None,
        page: Page | None = None,
    ) -> list[Task]:
        """List tasks matching a filter. Raises RepositoryError on failure."""


def _sort_value(task: Task, key: TaskSortKey):
    if key == TaskSortKey.COMPLEXITY:
        # Unscored tasks sort before scored ones
        return (task.complexity is not None, task.complexity or 0)
    if key == TaskSortKey.TITLE:
        return task.title.lower()
    return getattr(task, key.value)


class InMemoryTaskRepository(TaskRepository):
    """Dict-backed repository; stores copies so callers cannot mutate saved state."""

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._lock = asyncio.Lock()

    async def save(self, task: Task) -> None:
        async with self._lock:
            self._tasks[task.id] = task.model_copy(deep=True)

    async def find_by_id(self, task_id: str) -> Task | None:
        async with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    async def find_by_filter(
        self,
        task_filter: TaskFilter | None = None,
        sort: TaskSort | None = None,
        page: Page | None = None,
    ) -> list[Task]:
        task_filter = task_filter or TaskFilter()
        sort = sort or TaskSort()
        page = page or Page()

        async with self._lock:
            matches = [t for t in self._tasks.values() if task_filter.matches(t)]

        try:
            matches.sort(key=lambda t: _sort_value(t, sort.key), reverse=sort.descending)
        except TypeError as e:
            raise RepositoryError(f"Cannot sort tasks by {sort.key.value}: {e}") from e

        window = matches[page.offset:page.offset + page.limit]
        return [t.model_copy(deep=True) for t in window]

    def __len__(self) -> int:
        return len(self._tasks)
