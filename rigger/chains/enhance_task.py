"""Generate one enhancement for a task's description."""

from rigger.core.llm import parse_enhancement, unwrap_outcome
from rigger.core.logging import get_logger
from rigger.core.schemas_providers import GenerationResult
from rigger.core.schemas_tasks import Enhancement, Task
from rigger.providers.registry import ProviderRegistry

logger = get_logger(__name__)


ENHANCEMENT_PROMPT = """Analyze the following task and suggest ONE specific enhancement to its description.

{context}# Task Information

**Title:** {title}
**Description:** {description}
**Assignee:** {assignee}
**Due Date:** {due_date}
**Complexity:** {complexity} / 10

# Enhancement Criteria

Consider:
- **Clarity**: Is the goal clearly stated?
- **Actionability**: Can someone immediately start working on this?
- **Completeness**: Are there missing details or context?
- **Specificity**: Can you make vague requirements more concrete?

Use the relevant context above, when present, to ground the enhancement in
the project's actual requirements.

## Output Format
Output valid JSON only:
{{
  "enhancement_type": "clarify | rewrite | expand",
  "enhanced_description": "The improved task description...",
  "reasoning": "Why this enhancement makes the task easier to act on..."
}}"""


def build_enhancement_prompt(task: Task, context: str = "") -> str:
    return ENHANCEMENT_PROMPT.format(
        context=context,
        title=task.title,
        description=task.working_description or "(none)",
        assignee=task.assignee or "unassigned",
        due_date=task.due_date or "none",
        complexity=task.complexity if task.complexity is not None else "unscored",
    )


async def enhance_task(
    task: Task,
    registry: ProviderRegistry,
    context: str = "",
    slot: str = "main",
) -> GenerationResult[Enhancement]:
    """
    Ask the provider for an enhanced task description.

    Args:
        task: Task to enhance
        registry: Provider registry used for dispatch
        context: Pre-rendered RAG context section ('' for none)
        slot: Slot to dispatch on

    Returns:
        GenerationResult holding the Enhancement

    Raises:
        ProviderError: If every provider failed or the response is unusable
    """
    prompt = build_enhancement_prompt(task, context)
    dispatch = await registry.dispatch_text(slot, prompt)

    enhancement, warnings = unwrap_outcome(
        parse_enhancement(dispatch.value), "enhancement", dispatch.attempts
    )
    if warnings:
        logger.info(
            f"Enhancement for task {task.id} parsed with warnings",
            extra={"task_id": task.id, "extra_data": {"warnings": warnings}},
        )

    return GenerationResult(value=enhancement, attempts=dispatch.attempts, warnings=warnings)
