"""
Turns whatever the reasoning service sent back into canonical plan objects.
What it does:
- Reads loose step / goal / critique dicts field by field with safe defaults
- Resolves dependsOn references (indices, titles, ids) into strictly-earlier indices
- Flattens goal -> subgoal -> step trees into one ordered step list
- Builds fresh PlanSteps (new ids every time, clamped attempt budget)

Nothing in here raises on bad input: junk fields are defaulted or dropped.

And, the main purpose:
One total normalization from "anything" to the engine's plan shapes.
"""


import math
import re
from typing import Any, Iterable, Optional, Union

from planner_core.agent.heuristics import decide_next_action
from planner_core.core.config import clamp_int, settings
from planner_core.core.ids import new_id
from planner_core.llm.schemas import (
    AgentDecision,
    FlatPlan,
    Goal,
    HierarchicalPlan,
    PlanHierarchy,
    PlannerAlternative,
    PlannerCritique,
    PlannerMeta,
    PlanShape,
    PlanStep,
    StepSpec,
    Subgoal,
)


DEFAULT_STEP_TITLE = "Review the page state."
DEFAULT_GOAL_TITLE = "Primary objective"
DEFAULT_SUBGOAL_TITLE = "Supporting task"

PHASES = {"plan", "observe", "act", "verify", "recover"}
TASK_TYPES = {"web_task", "extract_info"}
MAX_SAFETY_STEPS = 3
MAX_VERIFY_STEPS = 3

_INDEX_REF_RE = re.compile(r"(?:step[\s_-]*)?#?(\d+)")

Ref = Union[int, str]


# ---------------------------------------------------------------------------
# Field readers
# ---------------------------------------------------------------------------

def normalize_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def normalize_string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _unique(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def normalize_priority(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def normalize_confidence(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return clamp_int(value, 0, 100, 0)


def normalize_tool(value: Any) -> str:
    """'none' stays 'none'; a known tool is kept; anything else becomes the primary tool."""
    if not isinstance(value, str):
        return settings.PRIMARY_TOOL
    t = value.strip().lower()
    if "|" in t:
        t = t.split("|")[0].strip()
    if "," in t:
        t = t.split(",")[0].strip()
    if t == "none":
        return "none"
    if t in {name.lower() for name in settings.ALLOWED_TOOLS}:
        return t
    return settings.PRIMARY_TOOL


def normalize_phase(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    phase = value.strip().lower()
    return phase if phase in PHASES else None


def _read_refs(value: Any) -> list[Ref]:
    if value is None or isinstance(value, bool):
        return []
    items = value if isinstance(value, list) else [value]
    refs: list[Ref] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            refs.append(item)
        elif isinstance(item, float) and item.is_integer():
            refs.append(int(item))
        elif isinstance(item, str) and item.strip():
            refs.append(item.strip())
    return refs


def read_step_spec(value: Any) -> StepSpec:
    if isinstance(value, str):
        value = {"title": value}
    if not isinstance(value, dict):
        value = {}
    return StepSpec(
        ref_id=normalize_text(value.get("id")),
        title=normalize_text(value.get("title")) or DEFAULT_STEP_TITLE,
        tool=normalize_tool(value.get("tool")),
        expected_observation=normalize_text(value.get("expectedObservation")),
        success_criteria=normalize_text(value.get("successCriteria")),
        phase=normalize_phase(value.get("phase")),
        priority=normalize_priority(value.get("priority")),
        depends_on=_read_refs(value.get("dependsOn")),
    )


def read_step_specs(value: Any) -> list[StepSpec]:
    if not isinstance(value, list):
        return []
    return [read_step_spec(item) for item in value]


def _read_subgoal(value: Any) -> Subgoal:
    raw = value if isinstance(value, dict) else {}
    return Subgoal(
        id=new_id("subgoal"),
        title=normalize_text(raw.get("title")) or DEFAULT_SUBGOAL_TITLE,
        success_criteria=normalize_text(raw.get("successCriteria")),
        priority=normalize_priority(raw.get("priority")),
        depends_on=_read_refs(raw.get("dependsOn")),
        steps=read_step_specs(raw.get("steps")),
    )


def _read_goal(value: Any) -> Goal:
    raw = value if isinstance(value, dict) else {}
    subgoals = raw.get("subgoals")
    return Goal(
        id=new_id("goal"),
        title=normalize_text(raw.get("title")) or DEFAULT_GOAL_TITLE,
        success_criteria=normalize_text(raw.get("successCriteria")),
        priority=normalize_priority(raw.get("priority")),
        depends_on=_read_refs(raw.get("dependsOn")),
        subgoals=[_read_subgoal(s) for s in subgoals] if isinstance(subgoals, list) else [],
    )


def read_hierarchy(value: Any) -> Optional[PlanHierarchy]:
    """A goal list -> PlanHierarchy with fresh ids, or None when there are no goals."""
    if not isinstance(value, list) or not value:
        return None
    return PlanHierarchy(goals=[_read_goal(g) for g in value])


def hierarchy_step_count(hierarchy: Optional[PlanHierarchy]) -> int:
    if hierarchy is None:
        return 0
    return sum(len(sub.steps) for goal in hierarchy.goals for sub in goal.subgoals)


def read_plan_shape(
    raw: dict,
    *,
    goals_key: str = "goals",
    steps_keys: tuple[str, ...] = ("steps",),
) -> Optional[PlanShape]:
    """Hierarchy wins when it carries at least one step; otherwise the first non-empty flat list."""
    hierarchy = read_hierarchy(raw.get(goals_key))
    if hierarchy_step_count(hierarchy) > 0:
        return HierarchicalPlan(hierarchy=hierarchy)
    for key in steps_keys:
        specs = read_step_specs(raw.get(key))
        if specs:
            return FlatPlan(steps=specs)
    return None


# ---------------------------------------------------------------------------
# Dependency resolution
# ---------------------------------------------------------------------------

def _resolve_refs(
    refs: list[Ref],
    position: int,
    titles: list[str],
    ids: list[Optional[str]],
) -> tuple[list[int], list[str]]:
    """
    Map refs onto sibling indices strictly below ``position``.
    Returns (indices, unresolved string refs). Out-of-range and forward refs are dropped.
    """
    resolved: list[int] = []
    unresolved: list[str] = []
    for ref in refs:
        idx: Optional[int]
        if isinstance(ref, int):
            idx = ref
        else:
            key = ref.lower()
            idx = next(
                (
                    j
                    for j in range(min(position, len(titles)))
                    if titles[j].lower() == key or (ids[j] or "").lower() == key
                ),
                None,
            )
            if idx is None:
                m = _INDEX_REF_RE.fullmatch(key)
                if m:
                    idx = int(m.group(1))
            if idx is None:
                unresolved.append(ref)
                continue
        if 0 <= idx < position and idx not in resolved:
            resolved.append(idx)
    return sorted(resolved), unresolved


def _place_flat(specs: list[StepSpec], offset: int = 0) -> list[StepSpec]:
    """Resolve a sibling list's refs and shift them into a global index space starting at offset."""
    titles = [s.title for s in specs]
    ids = [s.ref_id for s in specs]
    placed = []
    for i, spec in enumerate(specs):
        local, _ = _resolve_refs(spec.depends_on, i, titles, ids)
        placed.append(spec.model_copy(update={"depends_on": [offset + d for d in local]}))
    return placed


def flatten_hierarchy(hierarchy: PlanHierarchy) -> list[StepSpec]:
    """
    Goal order -> subgoal order -> step order.

    Every returned spec has depends_on rewritten to flattened indices:
    - step refs are sibling indices/titles within the subgoal; a title that is not a
      sibling may name any earlier flattened step
    - a subgoal ref makes the subgoal's first step wait on the referenced subgoal's last step
    - a goal ref does the same across goals
    Priority is inherited step -> subgoal -> goal.
    """
    flat: list[StepSpec] = []
    goal_titles = [g.title for g in hierarchy.goals]
    goal_ids: list[Optional[str]] = [g.id for g in hierarchy.goals]
    goal_spans: list[Optional[tuple[int, int]]] = []

    for gi, goal in enumerate(hierarchy.goals):
        goal_start = len(flat)
        sub_titles = [s.title for s in goal.subgoals]
        sub_ids: list[Optional[str]] = [s.id for s in goal.subgoals]
        sub_spans: list[Optional[tuple[int, int]]] = []

        for si, sub in enumerate(goal.subgoals):
            sub_start = len(flat)
            titles = [s.title for s in sub.steps]
            ids = [s.ref_id for s in sub.steps]
            for li, spec in enumerate(sub.steps):
                local, unresolved = _resolve_refs(spec.depends_on, li, titles, ids)
                deps = {sub_start + d for d in local}
                for ref in unresolved:
                    key = ref.lower()
                    match = next((j for j in range(sub_start) if flat[j].title.lower() == key), None)
                    if match is not None:
                        deps.add(match)
                priority = next(
                    (p for p in (spec.priority, sub.priority, goal.priority) if p is not None),
                    None,
                )
                flat.append(
                    spec.model_copy(
                        update={
                            "depends_on": sorted(deps),
                            "priority": priority,
                            "goal_id": goal.id,
                            "subgoal_id": sub.id,
                        }
                    )
                )
            span = (sub_start, len(flat) - 1) if len(flat) > sub_start else None
            sub_spans.append(span)
            if span is not None:
                targets, _ = _resolve_refs(sub.depends_on, si, sub_titles, sub_ids)
                _add_span_deps(flat, span[0], [sub_spans[t] for t in targets])

        goal_span = (goal_start, len(flat) - 1) if len(flat) > goal_start else None
        goal_spans.append(goal_span)
        if goal_span is not None:
            targets, _ = _resolve_refs(goal.depends_on, gi, goal_titles, goal_ids)
            _add_span_deps(flat, goal_span[0], [goal_spans[t] for t in targets])

    return flat


def _add_span_deps(flat: list[StepSpec], first: int, spans: list[Optional[tuple[int, int]]]) -> None:
    extra = {span[1] for span in spans if span is not None and span[1] < first}
    if not extra:
        return
    current = set(flat[first].depends_on)
    flat[first] = flat[first].model_copy(update={"depends_on": sorted(current | extra)})


# ---------------------------------------------------------------------------
# PlanStep construction
# ---------------------------------------------------------------------------

def _new_step(spec: StepSpec, depends_on: list[int], max_attempts: int, default_phase: str = "act") -> PlanStep:
    return PlanStep(
        id=new_id("step"),
        title=spec.title,
        status="pending",
        tool=spec.tool,
        expected_observation=spec.expected_observation,
        success_criteria=spec.success_criteria,
        phase=spec.phase or default_phase,
        priority=spec.priority,
        depends_on=depends_on,
        goal_id=spec.goal_id,
        subgoal_id=spec.subgoal_id,
        attempts=0,
        max_attempts=max_attempts,
    )


def build_safety_check_steps(meta: Optional[PlannerMeta], max_attempts: int) -> list[PlanStep]:
    if meta is None:
        return []
    return [
        _new_step(StepSpec(title=f"Safety check: {check}", tool="none", phase="observe"), [], max_attempts)
        for check in meta.safety_checks[:MAX_SAFETY_STEPS]
    ]


def build_verification_steps(meta: Optional[PlannerMeta], max_attempts: int) -> list[PlanStep]:
    if meta is None:
        return []
    return [
        _new_step(StepSpec(title=f"Verify: {signal}", tool="none", phase="verify"), [], max_attempts)
        for signal in meta.success_signals[:MAX_VERIFY_STEPS]
    ]


def _materialize(
    placed: list[StepSpec],
    meta: Optional[PlannerMeta],
    include_safety: bool,
    max_attempts: int,
) -> list[PlanStep]:
    # safety/verify steps only decorate a real plan, never stand in for one
    if not placed:
        return []
    attempts = clamp_int(max_attempts, 1, 5, 2)
    preflight = build_safety_check_steps(meta, attempts) if include_safety else []
    shift = len(preflight)
    planned = []
    for i, spec in enumerate(placed):
        deps = sorted({shift + d for d in spec.depends_on if isinstance(d, int) and 0 <= d < i})
        planned.append(_new_step(spec, deps, attempts))
    verification = build_verification_steps(meta, attempts) if include_safety else []
    return [*preflight, *planned, *verification]


def to_plan_steps(
    shape: Optional[PlanShape],
    meta: Optional[PlannerMeta] = None,
    include_safety: bool = False,
    max_attempts: Optional[int] = None,
) -> list[PlanStep]:
    """The single conversion from either plan shape to ordered, dependency-sound PlanSteps."""
    if max_attempts is None:
        max_attempts = settings.MAX_STEP_ATTEMPTS
    if shape is None:
        placed: list[StepSpec] = []
    elif isinstance(shape, HierarchicalPlan):
        placed = flatten_hierarchy(shape.hierarchy)
    else:
        placed = _place_flat(shape.steps)
    return _materialize(placed, meta, include_safety, max_attempts)


def build_plan_steps(
    specs: list[StepSpec],
    meta: Optional[PlannerMeta] = None,
    include_safety: bool = False,
    max_attempts: Optional[int] = None,
) -> list[PlanStep]:
    return to_plan_steps(FlatPlan(steps=specs), meta, include_safety, max_attempts)


def normalize_steps(value: Any, max_steps: int, max_attempts: Optional[int] = None) -> list[PlanStep]:
    """Loose flat step list straight to PlanSteps, capped at max_steps."""
    return build_plan_steps(read_step_specs(value), max_attempts=max_attempts)[: max(max_steps, 0)]


def build_branch_steps_from_alternatives(
    alternatives: list[PlannerAlternative],
    max_attempts: int,
    max_steps: int,
) -> list[PlanStep]:
    """Deterministic alternatives -> recovery steps; each alternative's refs stay inside its own block."""
    placed: list[StepSpec] = []
    for alt in alternatives:
        if alt.steps:
            block = [s if s.phase else s.model_copy(update={"phase": "recover"}) for s in alt.steps]
            placed.extend(_place_flat(block, offset=len(placed)))
        elif alt.title:
            placed.append(StepSpec(title=alt.title, tool=settings.PRIMARY_TOOL, phase="recover"))
    return _materialize(placed, None, False, max_attempts)[: max(max_steps, 0)]


# ---------------------------------------------------------------------------
# Meta / decision
# ---------------------------------------------------------------------------

def _read_critique(value: Any) -> Optional[PlannerCritique]:
    if not isinstance(value, dict):
        return None
    critique = PlannerCritique(
        assumptions=normalize_string_list(value.get("assumptions")),
        risks=normalize_string_list(value.get("risks")),
        unknowns=normalize_string_list(value.get("unknowns")),
        safety_checks=normalize_string_list(value.get("safetyChecks")),
        questions=normalize_string_list(value.get("questions")),
    )
    if not any((critique.assumptions, critique.risks, critique.unknowns, critique.safety_checks, critique.questions)):
        return None
    return critique


def _read_alternatives(value: Any) -> list[PlannerAlternative]:
    if not isinstance(value, list):
        return []
    out = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        title = normalize_text(entry.get("title"))
        steps = read_step_specs(entry.get("steps"))
        if not title and not steps:
            continue
        out.append(
            PlannerAlternative(
                title=title or DEFAULT_STEP_TITLE,
                rationale=normalize_text(entry.get("rationale")),
                steps=steps,
            )
        )
    return out


def normalize_meta(raw: Any) -> PlannerMeta:
    if not isinstance(raw, dict):
        return PlannerMeta()
    critique = _read_critique(raw.get("critique") or raw.get("selfCritique"))
    safety = _unique([*(critique.safety_checks if critique else []), *normalize_string_list(raw.get("safetyChecks"))])
    questions = _unique([*(critique.questions if critique else []), *normalize_string_list(raw.get("questions"))])
    task_type = raw.get("taskType")
    return PlannerMeta(
        critique=critique,
        alternatives=_read_alternatives(raw.get("alternatives")),
        safety_checks=safety,
        questions=questions,
        task_type=task_type if task_type in TASK_TYPES else None,
        summary=normalize_text(raw.get("summary")),
        constraints=normalize_string_list(raw.get("constraints")),
        success_signals=normalize_string_list(raw.get("successSignals")),
    )


def normalize_decision(
    raw: Any,
    steps: list[PlanStep],
    objective: str,
    memory: list[str],
) -> AgentDecision:
    if isinstance(raw, dict):
        action = raw.get("action")
        reason = normalize_text(raw.get("reason"))
        if action == "tool":
            return AgentDecision(
                action="tool",
                reason=reason or "Planner selected tool execution.",
                tool_name=normalize_tool(raw.get("toolName")),
            )
        if action == "respond":
            return AgentDecision(action="respond", reason=reason or "Planner selected a direct response.")
        if action == "wait_human":
            return AgentDecision(action="wait_human", reason=reason or "Planner requires human input.")
    if steps:
        return AgentDecision(
            action="tool",
            reason="Plan generated; execute tool steps.",
            tool_name=settings.PRIMARY_TOOL,
        )
    return decide_next_action(objective, memory)
