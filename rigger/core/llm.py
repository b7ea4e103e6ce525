"""Tolerant parsing of loosely structured LLM output.

Models rarely return exactly the JSON they were asked for. Every parser
here returns one of three outcomes instead of raising:

    Parsed(value)                  - structure found and complete
    PartialParsed(value, warnings) - usable structure with gaps filled in
    Unparsable(raw_text, reason)   - nothing usable; callers raise ProviderError
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from rigger.core.errors import ProviderError
from rigger.core.schemas_tasks import ComprehensionTest, ComprehensionTestType, Difficulty, Enhancement

T = TypeVar("T")


@dataclass
class Parsed(Generic[T]):
    value: T


@dataclass
class PartialParsed(Generic[T]):
    value: T
    warnings: list[str] = field(default_factory=list)


@dataclass
class Unparsable:
    raw_text: str
    reason: str


ParseOutcome = Union[Parsed[T], PartialParsed[T], Unparsable]


def _outcome(value: Any, warnings: list[str]) -> "ParseOutcome":
    if warnings:
        return PartialParsed(value, warnings)
    return Parsed(value)


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    # Extract JSON from markdown code fences
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    # Fallback: strip leading/trailing fences without regex
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def extract_json(raw_output: str) -> Any | None:
    """
    Find the first decodable JSON value in an LLM response.

    Tries, in order: fenced block, the whole cleaned text, the outermost
    {...} object, the outermost [...] array. Returns None if none decode.
    """
    if not raw_output or not raw_output.strip():
        return None

    cleaned = _strip_llm_fences(raw_output)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = raw_output.find(open_char)
        end = raw_output.rfind(close_char)
        if start != -1 and end > start:
            try:
                return json.loads(raw_output[start:end + 1])
            except json.JSONDecodeError:
                continue

    return None


def _first_string(data: dict, keys: tuple[str, ...]) -> str | None:
    """Return the first non-empty scalar under any of the given keys, as a string."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
    return None


def _first_string_list(data: dict, keys: tuple[str, ...]) -> list[str] | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            strings = [str(item).strip() for item in value if isinstance(item, (str, int, float))]
            strings = [s for s in strings if s]
            if strings:
                return strings
    return None


# =============================================================================
# Enhancement
# =============================================================================

ENHANCEMENT_KEYS = ("enhanced_description", "description", "content", "enhancement", "text")
REASONING_KEYS = ("reasoning", "rationale", "explanation", "why")
ENHANCEMENT_TYPE_KEYS = ("enhancement_type", "type", "kind")


def parse_enhancement(raw_output: str) -> "ParseOutcome[Enhancement]":
    """Parse an enhancement; plain prose is accepted as a partial result."""
    data = extract_json(raw_output)

    if isinstance(data, dict):
        description = _first_string(data, ENHANCEMENT_KEYS)
        if description:
            warnings = []
            reasoning = _first_string(data, REASONING_KEYS)
            if reasoning is None:
                warnings.append("missing reasoning")
            enhancement_type = (_first_string(data, ENHANCEMENT_TYPE_KEYS) or "clarify").lower()
            return _outcome(
                Enhancement(
                    enhanced_description=description,
                    reasoning=reasoning or "",
                    enhancement_type=enhancement_type,
                ),
                warnings,
            )

    prose = _strip_llm_fences(raw_output or "")
    if prose and not prose.startswith(("{", "[")):
        return PartialParsed(
            Enhancement(enhanced_description=prose, reasoning=""),
            ["no JSON object found; using response text as the description"],
        )

    return Unparsable(raw_output or "", "no enhanced description in response")


# =============================================================================
# Comprehension test
# =============================================================================

QUESTION_KEYS = ("question", "q", "prompt", "test_question", "quiz_question", "query")
ANSWER_KEYS = ("correct_answer", "answer", "correct", "solution", "right_answer", "expected_answer")
TEST_TYPE_KEYS = ("test_type", "type", "test_kind", "question_type", "format")
OPTION_KEYS = ("options", "answer_options", "choices", "alternatives", "possible_answers")
DIFFICULTY_KEYS = ("difficulty", "level")

_TEST_TYPE_ALIASES = {
    "short_answer": ComprehensionTestType.SHORT_ANSWER,
    "short answer": ComprehensionTestType.SHORT_ANSWER,
    "open": ComprehensionTestType.SHORT_ANSWER,
    "multiple_choice": ComprehensionTestType.MULTIPLE_CHOICE,
    "multiple choice": ComprehensionTestType.MULTIPLE_CHOICE,
    "mcq": ComprehensionTestType.MULTIPLE_CHOICE,
    "true_false": ComprehensionTestType.TRUE_FALSE,
    "true/false": ComprehensionTestType.TRUE_FALSE,
    "true false": ComprehensionTestType.TRUE_FALSE,
    "boolean": ComprehensionTestType.TRUE_FALSE,
}


def normalize_test_type(value: str | None, default: ComprehensionTestType) -> ComprehensionTestType:
    if not value:
        return default
    return _TEST_TYPE_ALIASES.get(value.strip().lower().replace("-", "_"), default)


def parse_comprehension_test(
    raw_output: str,
    default_type: ComprehensionTestType = ComprehensionTestType.SHORT_ANSWER,
) -> "ParseOutcome[ComprehensionTest]":
    """Parse a comprehension test, accepting common field-name aliases."""
    data = extract_json(raw_output)
    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if not isinstance(data, dict):
        return Unparsable(raw_output or "", "no JSON object found in response")

    question = _first_string(data, QUESTION_KEYS)
    if not question:
        return Unparsable(raw_output, "missing required field: question")

    warnings = []
    raw_type = _first_string(data, TEST_TYPE_KEYS)
    test_type = normalize_test_type(raw_type, default_type)
    if raw_type and raw_type.strip().lower().replace("-", "_") not in _TEST_TYPE_ALIASES:
        warnings.append(f"unknown test type {raw_type!r}, using {test_type.value}")

    correct_answer = _first_string(data, ANSWER_KEYS)
    if correct_answer is None:
        warnings.append("missing correct answer")

    options = _first_string_list(data, OPTION_KEYS)
    if test_type == ComprehensionTestType.MULTIPLE_CHOICE and not options:
        warnings.append("multiple choice question without options")
    if test_type == ComprehensionTestType.TRUE_FALSE and not options:
        options = ["true", "false"]

    raw_difficulty = (_first_string(data, DIFFICULTY_KEYS) or "").lower()
    try:
        difficulty = Difficulty(raw_difficulty) if raw_difficulty else Difficulty.MEDIUM
    except ValueError:
        warnings.append(f"unknown difficulty {raw_difficulty!r}")
        difficulty = Difficulty.MEDIUM

    return _outcome(
        ComprehensionTest(
            question=question,
            test_type=test_type,
            difficulty=difficulty,
            options=options,
            correct_answer=correct_answer,
        ),
        warnings,
    )


# =============================================================================
# Subtasks
# =============================================================================

SUBTASK_LIST_KEYS = ("subtasks", "tasks", "items", "steps")
TITLE_KEYS = ("title", "name", "task", "summary")

_LIST_LINE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$", re.MULTILINE)


def parse_subtasks(raw_output: str) -> "ParseOutcome[list[dict[str, Any]]]":
    """
    Parse a subtask list into dicts with title, description, assignee, due_date.

    Accepts a bare JSON array, an object wrapping the array, or, failing
    that, a markdown bullet/numbered list (partial).
    """
    data = extract_json(raw_output)

    if isinstance(data, dict):
        for key in SUBTASK_LIST_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break

    if isinstance(data, list):
        subtasks = []
        warnings = []
        for index, item in enumerate(data):
            if isinstance(item, str) and item.strip():
                subtasks.append({"title": item.strip()})
                continue
            if not isinstance(item, dict):
                warnings.append(f"skipped subtask {index}: not an object")
                continue
            title = _first_string(item, TITLE_KEYS)
            if not title:
                warnings.append(f"skipped subtask {index}: missing title")
                continue
            subtasks.append({
                "title": title,
                "description": _first_string(item, ("description", "details")),
                "assignee": _first_string(item, ("assignee", "owner")),
                "due_date": _first_string(item, ("due_date", "deadline")),
            })
        if subtasks:
            return _outcome(subtasks, warnings)
        return Unparsable(raw_output, "subtask list contained no usable entries")

    lines = _LIST_LINE.findall(_strip_llm_fences(raw_output or ""))
    if lines:
        return PartialParsed(
            [{"title": line} for line in lines],
            ["no JSON array found; parsed markdown list"],
        )

    return Unparsable(raw_output or "", "no subtask list in response")


def unwrap_outcome(outcome: "ParseOutcome[T]", what: str, attempts: list | None = None) -> tuple[T, list[str]]:
    """
    Return (value, warnings) from a parse outcome.

    Raises:
        ProviderError: If the outcome is Unparsable
    """
    if isinstance(outcome, Parsed):
        return outcome.value, []
    if isinstance(outcome, PartialParsed):
        return outcome.value, list(outcome.warnings)

    preview = outcome.raw_text[:200].replace("\n", " ")
    raise ProviderError(
        f"Unparsable {what} response: {outcome.reason} (raw: {preview!r})",
        attempts=attempts,
    )
