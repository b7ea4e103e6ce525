"""Decompose a complex task into 3-5 subtasks."""

from rigger.core.errors import ValidationError
from rigger.core.llm import parse_subtasks, unwrap_outcome
from rigger.core.logging import get_logger
from rigger.core.schemas_providers import GenerationResult
from rigger.core.schemas_tasks import Task, TaskStatus
from rigger.providers.registry import ProviderRegistry

logger = get_logger(__name__)

MIN_SUBTASKS = 3
MAX_SUBTASKS = 5
DEFAULT_PARENT_COMPLEXITY = 5

DECOMPOSITION_PROMPT = """You are a project management assistant specialized in breaking down complex tasks.

{context}**Parent Task**: {title}

**Description**: {description}

**Complexity Score**: {complexity} / 10

**Decomposition Guidelines**:
1. Generate {min_subtasks}-{max_subtasks} subtasks that collectively achieve the parent task's objective
2. Each subtask should be specific, actionable, and independently verifiable
3. Order subtasks by dependency (earlier tasks should be prerequisites for later ones)
4. Avoid overly granular steps (each subtask should be substantial)
5. Include technical specifics where applicable

{parent_details}## Output Format
Output a JSON array only. Each subtask has:
- title: string (10-100 characters, descriptive and actionable)
- description: string | null
- assignee: string | null (inherit from parent if appropriate)
- due_date: string | null (ISO 8601 format, coordinate with parent deadline)"""

TEMPLATE_SUBTASK_TITLES = (
    "Research and analyze requirements for: {title}",
    "Design architecture and technical approach for: {title}",
    "Implement core functionality for: {title}",
    "Test and validate: {title}",
    "Document and hand off: {title}",
)


def subtask_complexity(parent_complexity: int | None) -> int:
    """Two below the parent, floored at 0 and always lower than the parent when possible."""
    parent = parent_complexity if parent_complexity is not None else DEFAULT_PARENT_COMPLEXITY
    return max(parent - 2, 0)


def build_decomposition_prompt(
    task: Task,
    context: str = "",
    min_subtasks: int = MIN_SUBTASKS,
    max_subtasks: int = MAX_SUBTASKS,
) -> str:
    details = []
    if task.assignee:
        details.append(f"**Parent Assignee**: {task.assignee} (may inherit to subtasks)")
    if task.due_date:
        details.append(f"**Parent Due Date**: {task.due_date} (subtasks should align)")
    parent_details = "\n\n".join(details) + "\n\n" if details else ""

    return DECOMPOSITION_PROMPT.format(
        context=context,
        title=task.title,
        description=task.working_description or "(none)",
        complexity=task.complexity if task.complexity is not None else "unscored",
        min_subtasks=min_subtasks,
        max_subtasks=max_subtasks,
        parent_details=parent_details,
    )


def _make_subtask(parent: Task, fields: dict) -> Task:
    return Task(
        title=fields["title"],
        description=fields.get("description"),
        assignee=fields.get("assignee") or parent.assignee,
        due_date=fields.get("due_date") or parent.due_date,
        parent_task_id=parent.id,
        source_prd_id=parent.source_prd_id,
        complexity=subtask_complexity(parent.complexity),
        status=TaskStatus.TODO,
    )


def build_subtasks(
    parent: Task,
    parsed: list[dict],
    min_subtasks: int = MIN_SUBTASKS,
    max_subtasks: int = MAX_SUBTASKS,
) -> tuple[list[Task], list[str]]:
    """
    Turn parsed subtask dicts into child Tasks in Todo.

    Pads with template subtasks when too few came back and truncates when
    too many did; both cases are reported as warnings.
    """
    warnings = []
    entries = list(parsed)

    if len(entries) > max_subtasks:
        warnings.append(f"provider returned {len(entries)} subtasks; kept the first {max_subtasks}")
        entries = entries[:max_subtasks]

    if len(entries) < min_subtasks:
        warnings.append(f"provider returned {len(entries)} subtasks; padded to {min_subtasks} from templates")
        existing = {e["title"].lower() for e in entries}
        for template in TEMPLATE_SUBTASK_TITLES:
            if len(entries) >= min_subtasks:
                break
            title = template.format(title=parent.title)
            if title.lower() not in existing:
                entries.append({"title": title})

    return [_make_subtask(parent, entry) for entry in entries], warnings


async def decompose_task(
    task: Task,
    registry: ProviderRegistry,
    context: str = "",
    slot: str = "main",
    min_subtasks: int = MIN_SUBTASKS,
    max_subtasks: int = MAX_SUBTASKS,
) -> GenerationResult[list[Task]]:
    """
    Generate child tasks for a parent.

    Children are returned unsaved, in Todo, linked to the parent via
    parent_task_id and with complexity lower than the parent's.

    Raises:
        ValidationError: If the task is already in a terminal or decomposed state
        ProviderError: If every provider failed or no subtask list can be extracted
    """
    if task.is_terminal or task.status == TaskStatus.DECOMPOSED:
        raise ValidationError(f"Cannot decompose task {task.id} in status {task.status.value}")

    prompt = build_decomposition_prompt(task, context, min_subtasks, max_subtasks)
    dispatch = await registry.dispatch_text(slot, prompt)

    parsed, warnings = unwrap_outcome(parse_subtasks(dispatch.value), "decomposition", dispatch.attempts)
    subtasks, build_warnings = build_subtasks(task, parsed, min_subtasks, max_subtasks)
    warnings.extend(build_warnings)

    if warnings:
        logger.info(
            f"Decomposition of task {task.id} produced warnings",
            extra={"task_id": task.id, "extra_data": {"warnings": warnings}},
        )

    return GenerationResult(value=subtasks, attempts=dispatch.attempts, warnings=warnings)
