"""
Deterministic planning used when the reasoning service is unusable.
What it does:
- Builds ordered step titles from keywords in the objective
- Picks a best-guess next action
- Small helpers the execution loop uses to decide when to consult the model

No network, no randomness: the same input always gives the same plan.
"""


import re
from typing import Optional

from planner_core.core.config import clamp_int, settings
from planner_core.core.ids import new_id
from planner_core.llm.schemas import AgentDecision, PlanStep


_LOGIN_WORDS = ("login", "log in", "sign in", "signin")
_BROWSE_WORDS = ("browse", "website")
_EXTRACT_RE = re.compile(r"\b(extract|collect|find|list|get|look up|lookup)\b")
_TARGET_RE = re.compile(r"\b(price|prices|product|products|email|emails|item|items)\b")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")

LOGIN_STEPS = [
    "Open the target website.",
    "Locate the sign-in form.",
    "Fill in the credentials.",
    "Submit the form and wait for the next page.",
    "Verify the expected page or account state.",
]

BROWSE_STEPS = [
    "Open the target URL.",
    "Wait for the page to finish loading.",
    "Locate the requested content.",
    "Capture the relevant details.",
]

EXTRACT_STEPS = [
    "Open the target website.",
    "Search for the requested item.",
    "Open the most relevant result.",
    "Capture the requested details.",
]


def _mentions(lower: str, words: tuple[str, ...]) -> bool:
    return any(w in lower for w in words)


def _is_extraction(lower: str) -> bool:
    return bool(_EXTRACT_RE.search(lower) and _TARGET_RE.search(lower))


def build_fallback_plan(objective: str, max_steps: Optional[int] = None) -> list[str]:
    """Ordered step titles for ``objective``; empty only when the objective is blank."""
    limit = clamp_int(max_steps, 1, 20, settings.MAX_PLAN_STEPS)
    normalized = (objective or "").strip()
    if not normalized:
        return []
    lower = normalized.lower()

    if _mentions(lower, _LOGIN_WORDS):
        steps = list(LOGIN_STEPS)
    elif _mentions(lower, _BROWSE_WORDS):
        steps = list(BROWSE_STEPS)
    elif _is_extraction(lower):
        steps = list(EXTRACT_STEPS)
    else:
        steps = [s.strip() for s in _SENTENCE_SPLIT_RE.split(normalized) if s.strip()]

    return steps[:limit]


def fallback_plan_steps(
    objective: str,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> list[PlanStep]:
    attempts = clamp_int(max_attempts, 1, 5, clamp_int(settings.MAX_STEP_ATTEMPTS, 1, 5, 2))
    return [
        PlanStep(
            id=new_id("step"),
            title=title,
            status="pending",
            tool=settings.PRIMARY_TOOL,
            phase="act",
            depends_on=[],
            attempts=0,
            max_attempts=attempts,
        )
        for title in build_fallback_plan(objective, max_steps)
    ]


def decide_next_action(objective: str, memory: list[str]) -> AgentDecision:
    lower = (objective or "").lower()
    if _mentions(lower, _BROWSE_WORDS):
        return AgentDecision(
            action="tool",
            reason="Objective implies browser automation.",
            tool_name=settings.PRIMARY_TOOL,
        )
    if _mentions(lower, _LOGIN_WORDS):
        return AgentDecision(
            action="tool",
            reason="Objective includes a login flow.",
            tool_name=settings.PRIMARY_TOOL,
        )
    if memory:
        return AgentDecision(action="respond", reason="Sufficient context to respond.")
    return AgentDecision(action="wait_human", reason="Not enough context; human input required.")


def should_evaluate_replan(step_index: int, steps: list[PlanStep], replan_every_steps: int) -> bool:
    """True every ``replan_every_steps`` completed steps, never on short plans or after the last step."""
    if len(steps) < 3 or replan_every_steps < 1:
        return False
    next_index = step_index + 1
    if next_index >= len(steps):
        return False
    return next_index % replan_every_steps == 0


def is_extraction_step(step: PlanStep, objective: str, task_type: Optional[str]) -> bool:
    if task_type == "extract_info":
        return True
    combined = f"{step.title} {step.expected_observation or ''} {objective}".lower()
    return _is_extraction(combined)


def append_task_type(objective: str, task_type: Optional[str]) -> str:
    if not task_type:
        return objective
    return f"{objective}\n\nTask type: {task_type}"
