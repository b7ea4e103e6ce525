"""Pydantic schemas for tasks and their orchestration history."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from rigger.core.schemas_providers import DispatchAttempt


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class TaskStatus(str, Enum):
    """Status of a task in its orchestration lifecycle."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    PENDING_ENHANCEMENT = "pending_enhancement"
    PENDING_COMPREHENSION_TEST = "pending_comprehension_test"
    PENDING_DECOMPOSITION = "pending_decomposition"
    DECOMPOSED = "decomposed"
    ORCHESTRATION_COMPLETE = "orchestration_complete"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ERRORED = "errored"


TERMINAL_STATUSES = frozenset({
    TaskStatus.ORCHESTRATION_COMPLETE,
    TaskStatus.COMPLETED,
    TaskStatus.ARCHIVED,
    TaskStatus.ERRORED,
})


class RoutingDecision(str, Enum):
    """Which branch a scored task is sent down."""
    ENHANCE = "enhance"
    DECOMPOSE = "decompose"


class ComprehensionTestType(str, Enum):
    """Format of a comprehension test question."""
    SHORT_ANSWER = "short_answer"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class TaskSortKey(str, Enum):
    """Fields a task listing can be ordered by."""
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    COMPLEXITY = "complexity"


# ============================================================================
# Value objects
# ============================================================================


class Enhancement(BaseModel):
    """LLM-generated enrichment of a task description."""
    model_config = ConfigDict(frozen=True)

    enhanced_description: str
    reasoning: str = ""
    enhancement_type: str = "clarify"  # clarify | rewrite | expand
    created_at: datetime = Field(default_factory=_utcnow)


class ComprehensionTest(BaseModel):
    """Question checking that a task description is clear enough to act on."""
    model_config = ConfigDict(frozen=True)

    question: str
    test_type: ComprehensionTestType = ComprehensionTestType.SHORT_ANSWER
    difficulty: Difficulty = Difficulty.MEDIUM
    options: Optional[list[str]] = None
    correct_answer: Optional[str] = None
    answer_received: Optional[str] = None
    passed: Optional[bool] = None
    created_at: datetime = Field(default_factory=_utcnow)


class TaskRevision(BaseModel):
    """Audit entry appended on every status transition."""
    model_config = ConfigDict(frozen=True)

    from_status: TaskStatus
    to_status: TaskStatus
    changed_at: datetime = Field(default_factory=_utcnow)
    reason: Optional[str] = None
    failed_attempts: list[DispatchAttempt] = Field(default_factory=list)


class SubtaskPlan(BaseModel):
    """A generated child task recorded on its parent before the child row is saved."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    complexity: Optional[int] = Field(default=None, ge=0, le=10)
    source_prd_id: Optional[str] = None

    @classmethod
    def from_task(cls, task: "Task") -> "SubtaskPlan":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            assignee=task.assignee,
            due_date=task.due_date,
            complexity=task.complexity,
            source_prd_id=task.source_prd_id,
        )

    def to_task(self, parent_task_id: str) -> "Task":
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            assignee=self.assignee,
            due_date=self.due_date,
            complexity=self.complexity,
            source_prd_id=self.source_prd_id,
            parent_task_id=parent_task_id,
            status=TaskStatus.TODO,
        )


# ============================================================================
# Task
# ============================================================================


class Task(BaseModel):
    """Unit of work moved through the orchestration flow."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    complexity: Optional[int] = Field(default=None, ge=0, le=10)
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    parent_task_id: Optional[str] = None  # weak back-reference, lookup only
    subtask_ids: list[str] = Field(default_factory=list)
    # Set while decomposition is saving children; cleared on the decomposed commit
    decomposition_plan: list[SubtaskPlan] = Field(default_factory=list)
    source_prd_id: Optional[str] = None
    enhancements: list[Enhancement] = Field(default_factory=list)
    comprehension_tests: list[ComprehensionTest] = Field(default_factory=list)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    revisions: list[TaskRevision] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def working_description(self) -> str:
        """Most refined description available: latest enhancement, else the original."""
        if self.enhancements:
            return self.enhancements[-1].enhanced_description
        return self.description or ""


class TaskFilter(BaseModel):
    """Equality filters for task listing; unset fields match everything."""
    status: Optional[TaskStatus] = None
    parent_task_id: Optional[str] = None
    source_prd_id: Optional[str] = None
    assignee: Optional[str] = None

    def matches(self, task: Task) -> bool:
        for field_name in ("status", "parent_task_id", "source_prd_id", "assignee"):
            expected = getattr(self, field_name)
            if expected is not None and getattr(task, field_name) != expected:
                return False
        return True


class TaskSort(BaseModel):
    key: TaskSortKey = TaskSortKey.CREATED_AT
    descending: bool = False


class Page(BaseModel):
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)


class TaskTransitionEvent(BaseModel):
    """Broadcast once per committed status transition."""
    model_config = ConfigDict(frozen=True)

    task_id: str
    old_status: TaskStatus
    new_status: TaskStatus
    timestamp: datetime = Field(default_factory=_utcnow)
