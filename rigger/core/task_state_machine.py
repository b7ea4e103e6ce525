"""
Task status state machine.

Automated flow:
  TODO → IN_PROGRESS → PENDING_ENHANCEMENT → PENDING_COMPREHENSION_TEST → ORCHESTRATION_COMPLETE
                     ↘ PENDING_DECOMPOSITION → DECOMPOSED

Any pending step may fail to ERRORED; a retry re-enters at IN_PROGRESS and
goes straight back to the step that failed. ARCHIVED is reachable from
every state by explicit request.
"""

from datetime import datetime, timezone

from rigger.core.errors import InvalidTransitionError
from rigger.core.schemas_providers import DispatchAttempt
from rigger.core.schemas_tasks import Task, TaskRevision, TaskStatus, TaskTransitionEvent

S = TaskStatus

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    S.TODO: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({
        S.PENDING_ENHANCEMENT,
        S.PENDING_DECOMPOSITION,
        # Retry of a failed comprehension test step
        S.PENDING_COMPREHENSION_TEST,
    }),
    S.PENDING_ENHANCEMENT: frozenset({S.PENDING_COMPREHENSION_TEST, S.ERRORED}),
    S.PENDING_COMPREHENSION_TEST: frozenset({S.ORCHESTRATION_COMPLETE, S.ERRORED}),
    S.PENDING_DECOMPOSITION: frozenset({S.DECOMPOSED, S.ERRORED}),
    S.DECOMPOSED: frozenset(),
    S.ORCHESTRATION_COMPLETE: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.ARCHIVED: frozenset(),
    S.ERRORED: frozenset({S.IN_PROGRESS}),
}

RETRYABLE_STEPS = frozenset({
    S.PENDING_ENHANCEMENT,
    S.PENDING_COMPREHENSION_TEST,
    S.PENDING_DECOMPOSITION,
})


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Whether a status change is permitted. Archiving is always permitted."""
    if to_status == S.ARCHIVED:
        return from_status != S.ARCHIVED
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def apply_transition(
    task: Task,
    to_status: TaskStatus,
    reason: str | None = None,
    failed_attempts: list[DispatchAttempt] | None = None,
) -> TaskTransitionEvent:
    """
    Move a task to a new status and append the matching revision.

    Mutates the task in memory only; the caller commits it.

    Raises:
        InvalidTransitionError: If the transition is not in the table
    """
    from_status = task.status
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status.value, to_status.value)

    now = datetime.now(timezone.utc)
    task.revisions.append(TaskRevision(
        from_status=from_status,
        to_status=to_status,
        changed_at=now,
        reason=reason,
        failed_attempts=list(failed_attempts or []),
    ))
    task.status = to_status
    task.updated_at = now
    if to_status == S.ERRORED:
        task.last_error = reason
    elif from_status == S.ERRORED:
        task.last_error = None

    return TaskTransitionEvent(
        task_id=task.id,
        old_status=from_status,
        new_status=to_status,
        timestamp=now,
    )


def failed_step(task: Task) -> TaskStatus | None:
    """The pending step whose failure last sent this task to ERRORED."""
    for revision in reversed(task.revisions):
        if revision.to_status == S.ERRORED:
            if revision.from_status in RETRYABLE_STEPS:
                return revision.from_status
            return None
    return None


def retry_target(task: Task) -> TaskStatus | None:
    """Step an IN_PROGRESS task should resume at after a retry, if it came from ERRORED."""
    if task.status != S.IN_PROGRESS or not task.revisions:
        return None
    last = task.revisions[-1]
    if last.from_status != S.ERRORED:
        return None
    return failed_step(task)
