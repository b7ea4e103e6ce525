"""Task orchestration LangGraph.

Drives one task from intake to a resting state:

    start ──► enhance ──► comprehension_test ──► END
          └─► decompose ──────────────────────► END

The entry point is chosen from the task's persisted status, so running the
graph again on the same task resumes where the last committed transition
left it. Every transition is saved through the task repository before the
next node runs, then announced to the event publisher.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from langgraph.graph import END, START, StateGraph

from rigger.chains.decompose_task import decompose_task
from rigger.chains.enhance_task import enhance_task
from rigger.chains.generate_comprehension_test import generate_comprehension_test
from rigger.core.complexity import route, score_task
from rigger.core.config import Settings, get_settings
from rigger.core.errors import ProviderError, RepositoryError, RiggerError, TaskNotFoundError, ValidationError
from rigger.core.events import EventPublisher, LoggingEventPublisher
from rigger.core.logging import get_logger, log_with_context
from rigger.core.schemas_providers import DispatchAttempt
from rigger.core.schemas_tasks import (
    ComprehensionTestType,
    Page,
    RoutingDecision,
    SubtaskPlan,
    Task,
    TaskFilter,
    TaskSort,
    TaskStatus,
)
from rigger.core.task_state_machine import apply_transition, failed_step, retry_target
from rigger.db.tasks import TaskRepository
from rigger.providers.registry import ProviderRegistry
from rigger.services.retrieval import RetrievalService, format_context

logger = get_logger(__name__)

MAX_STEPS = 8

# Statuses on which run_flow does nothing
RESTING_STATUSES = frozenset({
    TaskStatus.DECOMPOSED,
    TaskStatus.ORCHESTRATION_COMPLETE,
    TaskStatus.COMPLETED,
    TaskStatus.ARCHIVED,
})


@dataclass
class TaskFlowState:
    """State for the task orchestration graph."""

    task: Task
    step_count: int = 0
    routing: RoutingDecision | None = None


def _check_max_steps(state: TaskFlowState) -> int:
    """Increment the step counter, raise if exceeded."""
    step_count = state.step_count + 1
    if step_count > MAX_STEPS:
        raise RuntimeError(f"Graph exceeded max steps ({MAX_STEPS})")
    return step_count


class TaskOrchestrator:
    """Runs task flows against a repository, a provider registry and a retrieval service."""

    def __init__(
        self,
        repository: TaskRepository,
        registry: ProviderRegistry,
        retrieval: RetrievalService,
        events: EventPublisher | None = None,
        settings: Settings | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.retrieval = retrieval
        self.events = events or LoggingEventPublisher()
        self.settings = settings or get_settings()
        self.test_type = ComprehensionTestType(self.settings.COMPREHENSION_TEST_TYPE)
        self._graph = self._build_graph().compile()

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    async def _find(self, task_id: str) -> Task | None:
        try:
            return await self.repository.find_by_id(task_id)
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to load task {task_id}: {e}") from e

    async def _load(self, task_id: str) -> Task:
        task = await self._find(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def _save(self, task: Task) -> None:
        try:
            await self.repository.save(task)
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to save task {task.id}: {e}") from e

    async def _transition(
        self,
        task: Task,
        to_status: TaskStatus,
        reason: str | None = None,
        failed_attempts: list[DispatchAttempt] | None = None,
    ) -> None:
        """Apply, commit, then announce one status transition."""
        event = apply_transition(task, to_status, reason=reason, failed_attempts=failed_attempts)
        await self._save(task)

        log_with_context(
            logger,
            logging.INFO,
            f"Task {task.id} moved {event.old_status.value} -> {event.new_status.value}",
            task_id=task.id,
            reason=reason,
            failed_attempts=len(failed_attempts or []),
        )

        try:
            await self.events.publish(event)
        except Exception as e:
            logger.warning(
                f"Event publication failed for task {task.id}: {e}",
                extra={"task_id": task.id},
            )

    async def _fail(self, task: Task, error: ProviderError) -> None:
        await self._transition(
            task,
            TaskStatus.ERRORED,
            reason=str(error),
            failed_attempts=[a for a in error.attempts if not a.succeeded],
        )

    async def _decomposition_depth(self, task: Task) -> int:
        """Number of ancestors above a task, following weak parent links."""
        depth = 0
        seen = {task.id}
        parent_id = task.parent_task_id
        while parent_id and parent_id not in seen:
            depth += 1
            if depth >= self.settings.MAX_DECOMPOSITION_DEPTH:
                break
            seen.add(parent_id)
            parent = await self._find(parent_id)
            parent_id = parent.parent_task_id if parent else None
        return depth

    # =========================================================================
    # Nodes
    # =========================================================================

    async def _route(self, task: Task) -> RoutingDecision:
        decision = route(task.complexity, self.settings.COMPLEXITY_THRESHOLD)
        if decision == RoutingDecision.DECOMPOSE:
            depth = await self._decomposition_depth(task)
            if depth >= self.settings.MAX_DECOMPOSITION_DEPTH:
                logger.info(
                    f"Task {task.id} at decomposition depth {depth}; enhancing instead",
                    extra={"task_id": task.id},
                )
                decision = RoutingDecision.ENHANCE
        return decision

    async def start(self, state: TaskFlowState) -> dict[str, Any]:
        """Score the task and move it to its first pending step."""
        step_count = _check_max_steps(state)
        task = state.task

        if task.status == TaskStatus.ERRORED:
            step = failed_step(task)
            await self._transition(
                task,
                TaskStatus.IN_PROGRESS,
                reason=f"retry of {step.value}" if step else "retry",
            )

        if task.status == TaskStatus.TODO:
            if task.complexity is None:
                task.complexity = score_task(task)
            await self._transition(task, TaskStatus.IN_PROGRESS, reason=f"complexity {task.complexity}")

        target = retry_target(task)
        if target is not None:
            await self._transition(task, target, reason="resuming failed step")
            return {"task": task, "step_count": step_count}

        if task.complexity is None:
            task.complexity = score_task(task)

        decision = await self._route(task)
        target = (
            TaskStatus.PENDING_DECOMPOSITION
            if decision == RoutingDecision.DECOMPOSE
            else TaskStatus.PENDING_ENHANCEMENT
        )
        await self._transition(
            task,
            target,
            reason=f"routed to {decision.value} (complexity {task.complexity}, "
                   f"threshold {self.settings.COMPLEXITY_THRESHOLD})",
        )
        return {"task": task, "step_count": step_count, "routing": decision}

    async def enhance(self, state: TaskFlowState) -> dict[str, Any]:
        """Retrieve context, generate an enhancement, advance to the comprehension test."""
        step_count = _check_max_steps(state)
        task = state.task

        results = await self.retrieval.retrieve(
            f"{task.title}\n{task.description or ''}",
            top_k=self.settings.ENHANCE_TOP_K,
            min_similarity=self.settings.ENHANCE_MIN_SIMILARITY,
        )

        try:
            generated = await enhance_task(task, self.registry, context=format_context(results))
        except ProviderError as e:
            await self._fail(task, e)
            return {"task": task, "step_count": step_count}

        task.enhancements.append(generated.value)
        await self._transition(
            task,
            TaskStatus.PENDING_COMPREHENSION_TEST,
            reason=f"enhancement recorded ({len(results)} context artifacts)",
            failed_attempts=generated.failed_attempts,
        )
        return {"task": task, "step_count": step_count}

    async def comprehension_test(self, state: TaskFlowState) -> dict[str, Any]:
        """Generate and record a comprehension test; grading happens elsewhere."""
        step_count = _check_max_steps(state)
        task = state.task

        try:
            generated = await generate_comprehension_test(task, self.registry, test_type=self.test_type)
        except ProviderError as e:
            await self._fail(task, e)
            return {"task": task, "step_count": step_count}

        task.comprehension_tests.append(generated.value)
        await self._transition(
            task,
            TaskStatus.ORCHESTRATION_COMPLETE,
            reason="comprehension test recorded",
            failed_attempts=generated.failed_attempts,
        )
        return {"task": task, "step_count": step_count}

    async def _plan_decomposition(self, task: Task) -> list[DispatchAttempt]:
        """Generate subtasks and commit them as a plan on the parent. Returns failed attempts."""
        results = await self.retrieval.retrieve(
            f"{task.title}\n{task.description or ''}",
            top_k=self.settings.DECOMPOSE_TOP_K,
            min_similarity=self.settings.DECOMPOSE_MIN_SIMILARITY,
        )
        generated = await decompose_task(
            task,
            self.registry,
            context=format_context(results),
            min_subtasks=self.settings.MIN_SUBTASKS,
            max_subtasks=self.settings.MAX_SUBTASKS,
        )

        task.decomposition_plan = [SubtaskPlan.from_task(s) for s in generated.value]
        task.subtask_ids.extend(s.id for s in generated.value)
        # Parent stays in pending_decomposition until every child row exists
        await self._save(task)
        return generated.failed_attempts

    async def decompose(self, state: TaskFlowState) -> dict[str, Any]:
        """Retrieve focused context, generate subtasks, save them, mark the parent decomposed."""
        step_count = _check_max_steps(state)
        task = state.task
        failed_attempts: list[DispatchAttempt] = []

        if task.decomposition_plan:
            logger.info(
                f"Resuming decomposition of task {task.id} from its saved plan",
                extra={"task_id": task.id},
            )
        else:
            try:
                failed_attempts = await self._plan_decomposition(task)
            except ProviderError as e:
                await self._fail(task, e)
                return {"task": task, "step_count": step_count}

        # One independent save per child; no cross-row transaction
        for planned in task.decomposition_plan:
            if await self._find(planned.id) is None:
                await self._save(planned.to_task(task.id))

        count = len(task.decomposition_plan)
        task.decomposition_plan = []
        await self._transition(
            task,
            TaskStatus.DECOMPOSED,
            reason=f"decomposed into {count} subtasks",
            failed_attempts=failed_attempts,
        )
        return {"task": task, "step_count": step_count}

    # =========================================================================
    # Routing
    # =========================================================================

    def _entry(self, state: TaskFlowState) -> str:
        status = state.task.status
        if status == TaskStatus.PENDING_ENHANCEMENT:
            return "enhance"
        if status == TaskStatus.PENDING_COMPREHENSION_TEST:
            return "comprehension_test"
        if status == TaskStatus.PENDING_DECOMPOSITION:
            return "decompose"
        if status in RESTING_STATUSES:
            return "end"
        return "start"

    def _after_start(self, state: TaskFlowState) -> str:
        return self._entry(state)

    def _after_enhance(self, state: TaskFlowState) -> str:
        if state.task.status == TaskStatus.PENDING_COMPREHENSION_TEST:
            return "comprehension_test"
        return "end"

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(TaskFlowState)

        graph.add_node("start", self.start)
        graph.add_node("enhance", self.enhance)
        graph.add_node("comprehension_test", self.comprehension_test)
        graph.add_node("decompose", self.decompose)

        graph.add_conditional_edges(
            START,
            self._entry,
            {
                "start": "start",
                "enhance": "enhance",
                "comprehension_test": "comprehension_test",
                "decompose": "decompose",
                "end": END,
            },
        )
        graph.add_conditional_edges(
            "start",
            self._after_start,
            {
                "enhance": "enhance",
                "comprehension_test": "comprehension_test",
                "decompose": "decompose",
                "start": END,
                "end": END,
            },
        )
        graph.add_conditional_edges(
            "enhance",
            self._after_enhance,
            {"comprehension_test": "comprehension_test", "end": END},
        )
        graph.add_edge("comprehension_test", END)
        graph.add_edge("decompose", END)

        return graph

    # =========================================================================
    # Public operations
    # =========================================================================

    async def run_flow(self, task_id: str) -> Task:
        """
        Run (or resume) the orchestration flow for one task.

        Idempotent: a task already at rest is returned unchanged, and a task
        in ERRORED re-enters at IN_PROGRESS and retries only the failed step.

        Raises:
            TaskNotFoundError: If no task has this id
            RepositoryError: If loading or committing a transition fails
        """
        task = await self._load(task_id)

        if task.status in RESTING_STATUSES:
            logger.debug(f"Task {task_id} already {task.status.value}; nothing to do", extra={"task_id": task_id})
            return task

        final_state = await self._graph.ainvoke(TaskFlowState(task=task))
        return final_state["task"]

    async def run_flows(
        self,
        task_ids: Iterable[str],
        follow_subtasks: bool = True,
    ) -> dict[str, Task | RiggerError]:
        """
        Run many flows concurrently, at most MAX_CONCURRENT_TASKS at a time.

        Subtasks of decomposed tasks are scheduled into the same pool when
        follow_subtasks is set. Per-task failures are returned, not raised.
        """
        semaphore = asyncio.Semaphore(self.settings.MAX_CONCURRENT_TASKS)
        results: dict[str, Task | RiggerError] = {}

        async def _run(task_id: str) -> None:
            if task_id in results:
                return
            async with semaphore:
                try:
                    task = await self.run_flow(task_id)
                except RiggerError as e:
                    logger.error(f"Flow failed for task {task_id}: {e}", extra={"task_id": task_id})
                    results[task_id] = e
                    return
            results[task_id] = task

            if follow_subtasks and task.status == TaskStatus.DECOMPOSED:
                await asyncio.gather(*(_run(child_id) for child_id in task.subtask_ids))

        await asyncio.gather(*(_run(task_id) for task_id in dict.fromkeys(task_ids)))
        return results

    async def archive_task(self, task_id: str, reason: str | None = None) -> Task:
        """Archive a task from any state."""
        task = await self._load(task_id)
        if task.status == TaskStatus.ARCHIVED:
            return task
        await self._transition(task, TaskStatus.ARCHIVED, reason=reason or "archived")
        return task

    async def complete_task(self, task_id: str) -> Task:
        """Mark an orchestrated task as done by its assignee."""
        task = await self._load(task_id)
        if task.status == TaskStatus.COMPLETED:
            return task
        if task.status != TaskStatus.ORCHESTRATION_COMPLETE:
            raise ValidationError(
                f"Task {task_id} must finish orchestration before completion (status {task.status.value})"
            )
        await self._transition(task, TaskStatus.COMPLETED, reason="completed")
        return task

    async def record_test_answer(
        self,
        task_id: str,
        answer: str,
        passed: bool | None = None,
        test_index: int = -1,
    ) -> Task:
        """Store an answer (and optional verdict) on one of the task's comprehension tests."""
        task = await self._load(task_id)
        if not task.comprehension_tests:
            raise ValidationError(f"Task {task_id} has no comprehension tests")
        try:
            test = task.comprehension_tests[test_index]
        except IndexError as e:
            raise ValidationError(f"Task {task_id} has no comprehension test {test_index}") from e

        task.comprehension_tests[test_index] = test.model_copy(
            update={"answer_received": answer, "passed": passed}
        )
        await self._save(task)
        return task

    async def get_task(self, task_id: str) -> Task:
        return await self._load(task_id)

    async def list_tasks(
        self,
        task_filter: TaskFilter | None = None,
        sort: TaskSort | None = None,
        page: Page | None = None,
    ) -> list[Task]:
        return await self.repository.find_by_filter(task_filter, sort, page)


def create_orchestrator(
    settings: Settings | None = None,
    repository: TaskRepository | None = None,
    store=None,
    events: EventPublisher | None = None,
) -> TaskOrchestrator:
    """Wire an orchestrator from settings, defaulting to in-memory storage."""
    from rigger.db.artifacts import InMemoryArtifactStore
    from rigger.db.tasks import InMemoryTaskRepository
    from rigger.providers.registry import build_registry

    settings = settings or get_settings()
    registry = build_registry(settings)
    retrieval = RetrievalService(
        registry,
        store or InMemoryArtifactStore(dimension=settings.EMBEDDING_DIM),
        embedding_dim=settings.EMBEDDING_DIM,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    return TaskOrchestrator(
        repository or InMemoryTaskRepository(),
        registry,
        retrieval,
        events=events,
        settings=settings,
    )
