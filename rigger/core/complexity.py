"""Complexity scoring and routing for tasks.

Scores are a pure function of the task's text features and metadata, in
the range 0-10. Routing compares the score against a threshold: at or
above it the task is decomposed, below it the task is enhanced.
"""

import re

from rigger.core.schemas_tasks import RoutingDecision, Task

BASE_SCORE = 3
EMPTY_TEXT_SCORE = 5
MAX_SCORE = 10
DEFAULT_THRESHOLD = 7

LONG_TITLE_CHARS = 50
LONG_DESCRIPTION_CHARS = 200
MIN_ENUMERATED_ITEMS = 3

ARCHITECTURAL_KEYWORDS = ("refactor", "migrate", "redesign", "rewrite", "architect")

MULTI_STEP_PHRASES = (
    "and then",
    "after that",
    "followed by",
    "step by step",
    "multiple",
    "end-to-end",
    "end to end",
    "first,",
    "finally",
    "as well as",
)

_ENUMERATED_LINE = re.compile(r"^\s*(?:[-*•]|\d+[.)]|[a-z][.)])\s+\S", re.IGNORECASE | re.MULTILINE)


def count_enumerated_items(text: str) -> int:
    """Count bullet or numbered lines in a block of text."""
    return len(_ENUMERATED_LINE.findall(text or ""))


def has_multi_step_language(text: str) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in MULTI_STEP_PHRASES)


def score_task(task: Task) -> int:
    """
    Estimate how much a task needs decomposition.

    Rules (additive, capped at 10):
        base                                       3
        title longer than 50 chars                +1
        architectural keyword in title            +2
        no assignee                               +1
        no due date                               +1
        description longer than 200 chars         +2
        multi-step language in title/description  +1
        3+ enumerated sub-requirements            +2

    A task with neither title nor description text scores 5.
    """
    title = (task.title or "").strip()
    description = (task.description or "").strip()

    if not title and not description:
        return EMPTY_TEXT_SCORE

    score = BASE_SCORE

    if len(title) > LONG_TITLE_CHARS:
        score += 1

    title_lower = title.lower()
    if any(keyword in title_lower for keyword in ARCHITECTURAL_KEYWORDS):
        score += 2

    if not task.assignee:
        score += 1

    if not task.due_date:
        score += 1

    if len(description) > LONG_DESCRIPTION_CHARS:
        score += 2

    if has_multi_step_language(f"{title}\n{description}"):
        score += 1

    if count_enumerated_items(description) >= MIN_ENUMERATED_ITEMS:
        score += 2

    return min(score, MAX_SCORE)


def route(score: int, threshold: int = DEFAULT_THRESHOLD) -> RoutingDecision:
    """Decompose when score >= threshold, otherwise enhance."""
    if score >= threshold:
        return RoutingDecision.DECOMPOSE
    return RoutingDecision.ENHANCE
