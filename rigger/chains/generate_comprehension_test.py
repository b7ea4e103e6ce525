"""Generate a comprehension test question for an enhanced task."""

from rigger.core.llm import parse_comprehension_test, unwrap_outcome
from rigger.core.logging import get_logger
from rigger.core.schemas_providers import GenerationResult
from rigger.core.schemas_tasks import ComprehensionTest, ComprehensionTestType, Task
from rigger.providers.registry import ProviderRegistry

logger = get_logger(__name__)


COMPREHENSION_TEST_PROMPT = """Generate a comprehension test for the following task.

# Task Information

**Title:** {title}
**Description:** {description}
**Assignee:** {assignee}
**Due Date:** {due_date}

# Test Requirements

**Test Type:** {test_type}

{type_instructions}

**Guidelines:**
- Keep questions under 60 characters
- Focus on the core objective or deliverable
- Use simple, direct language
- Make questions specific to the task content

## Output Format
At the end of your response, output a JSON object on its own line:
{{"question": "...", "test_type": "{test_type}", "difficulty": "easy | medium | hard", "correct_answer": "..."{options_field}}}"""

TYPE_INSTRUCTIONS = {
    ComprehensionTestType.SHORT_ANSWER: "Generate a short-answer question.\nProvide a brief expected answer.",
    ComprehensionTestType.MULTIPLE_CHOICE: (
        "Generate a multiple choice question with 3-4 options.\n"
        "Include the options array and the correct answer."
    ),
    ComprehensionTestType.TRUE_FALSE: (
        "Generate a statement that is either true or false about the task.\n"
        "The correct answer must be \"true\" or \"false\"."
    ),
}


def build_comprehension_test_prompt(task: Task, test_type: ComprehensionTestType) -> str:
    return COMPREHENSION_TEST_PROMPT.format(
        title=task.title,
        description=task.working_description or "(none)",
        assignee=task.assignee or "unassigned",
        due_date=task.due_date or "none",
        test_type=test_type.value,
        type_instructions=TYPE_INSTRUCTIONS[test_type],
        options_field=', "options": ["...", "..."]' if test_type == ComprehensionTestType.MULTIPLE_CHOICE else "",
    )


async def generate_comprehension_test(
    task: Task,
    registry: ProviderRegistry,
    test_type: ComprehensionTestType = ComprehensionTestType.SHORT_ANSWER,
    slot: str = "main",
) -> GenerationResult[ComprehensionTest]:
    """
    Generate one comprehension test for a task.

    The test is recorded, not graded: answer_received and passed stay empty.

    Raises:
        ProviderError: If every provider failed or no question can be extracted
    """
    prompt = build_comprehension_test_prompt(task, test_type)
    dispatch = await registry.dispatch_text(slot, prompt)

    test, warnings = unwrap_outcome(
        parse_comprehension_test(dispatch.value, default_type=test_type),
        "comprehension test",
        dispatch.attempts,
    )
    if warnings:
        logger.info(
            f"Comprehension test for task {task.id} parsed with warnings",
            extra={"task_id": task.id, "extra_data": {"warnings": warnings}},
        )

    return GenerationResult(value=test, attempts=dispatch.attempts, warnings=warnings)
