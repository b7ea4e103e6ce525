"""Tests for task status transitions."""

import pytest

from rigger.core.errors import InvalidTransitionError
from rigger.core.schemas_providers import DispatchAttempt
from rigger.core.schemas_tasks import Task, TaskStatus
from rigger.core.task_state_machine import (
    ALLOWED_TRANSITIONS,
    apply_transition,
    can_transition,
    failed_step,
    retry_target,
)

S = TaskStatus


def _walk(task: Task, *statuses: TaskStatus) -> Task:
    for status in statuses:
        apply_transition(task, status)
    return task


def test_enhance_path_is_allowed():
    task = _walk(
        Task(title="t"),
        S.IN_PROGRESS,
        S.PENDING_ENHANCEMENT,
        S.PENDING_COMPREHENSION_TEST,
        S.ORCHESTRATION_COMPLETE,
        S.COMPLETED,
    )
    assert task.status == S.COMPLETED
    assert len(task.revisions) == 5


def test_decompose_path_is_allowed():
    task = _walk(Task(title="t"), S.IN_PROGRESS, S.PENDING_DECOMPOSITION, S.DECOMPOSED)
    assert task.status == S.DECOMPOSED


@pytest.mark.parametrize("from_status,to_status", [
    (S.TODO, S.PENDING_ENHANCEMENT),
    (S.TODO, S.DECOMPOSED),
    (S.IN_PROGRESS, S.ORCHESTRATION_COMPLETE),
    (S.PENDING_ENHANCEMENT, S.DECOMPOSED),
    (S.DECOMPOSED, S.IN_PROGRESS),
    (S.COMPLETED, S.TODO),
    (S.ERRORED, S.PENDING_ENHANCEMENT),
])
def test_invalid_transitions_rejected(from_status, to_status):
    assert not can_transition(from_status, to_status)

    task = Task(title="t", status=from_status)
    with pytest.raises(InvalidTransitionError):
        apply_transition(task, to_status)
    assert task.status == from_status
    assert task.revisions == []


@pytest.mark.parametrize("status", [s for s in TaskStatus if s != S.ARCHIVED])
def test_archive_allowed_from_every_state(status):
    assert can_transition(status, S.ARCHIVED)


def test_archive_is_final():
    assert not can_transition(S.ARCHIVED, S.ARCHIVED)
    assert ALLOWED_TRANSITIONS[S.ARCHIVED] == frozenset()


def test_revision_and_event_record_transition():
    task = Task(title="t")
    event = apply_transition(task, S.IN_PROGRESS, reason="start")

    revision = task.revisions[-1]
    assert revision.from_status == S.TODO
    assert revision.to_status == S.IN_PROGRESS
    assert revision.reason == "start"
    assert event.task_id == task.id
    assert event.old_status == S.TODO
    assert event.new_status == S.IN_PROGRESS
    assert task.updated_at == revision.changed_at


def test_errored_sets_and_retry_clears_last_error():
    task = _walk(Task(title="t"), S.IN_PROGRESS, S.PENDING_ENHANCEMENT)
    attempt = DispatchAttempt(slot="main", provider="ollama", model="m", succeeded=False, error="boom")
    apply_transition(task, S.ERRORED, reason="All providers exhausted", failed_attempts=[attempt])

    assert task.last_error == "All providers exhausted"
    assert task.revisions[-1].failed_attempts == [attempt]

    apply_transition(task, S.IN_PROGRESS, reason="retry")
    assert task.last_error is None


def test_failed_step_and_retry_target():
    task = _walk(Task(title="t"), S.IN_PROGRESS, S.PENDING_ENHANCEMENT, S.PENDING_COMPREHENSION_TEST, S.ERRORED)
    assert failed_step(task) == S.PENDING_COMPREHENSION_TEST
    assert retry_target(task) is None

    apply_transition(task, S.IN_PROGRESS)
    assert retry_target(task) == S.PENDING_COMPREHENSION_TEST

    apply_transition(task, S.PENDING_COMPREHENSION_TEST)
    assert retry_target(task) is None


def test_retry_target_none_for_fresh_task():
    task = _walk(Task(title="t"), S.IN_PROGRESS)
    assert retry_target(task) is None
