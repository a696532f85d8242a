"""
Creates the task plan.
What it does:
- Computes a heuristic plan up front as the safety net
- Asks the reasoning service for a goal hierarchy (or recovery steps for a failed step)
- Expands flat answers into a hierarchy, enriches the hierarchy, flattens it
- Runs dedupe, repetition guard, evaluation and optimization passes
- Derives contingency branch steps and the next-action decision

Only the first request is load-bearing: if it fails or its reply has no JSON,
the heuristic plan is returned. Every later pass is best-effort and leaves
the plan untouched when it fails or comes back empty.

And, the main purpose:
Convert an objective into executable, dependency-ordered steps.
"""


from typing import Any, Literal, Optional, Union

from planner_core.agent.heuristics import decide_next_action, fallback_plan_steps
from planner_core.agent.normalize import (
    build_branch_steps_from_alternatives,
    build_plan_steps,
    flatten_hierarchy,
    hierarchy_step_count,
    normalize_decision,
    normalize_meta,
    normalize_string_list,
    read_hierarchy,
    read_step_specs,
    to_plan_steps,
)
from planner_core.agent.tracer import AuditSink, record
from planner_core.core.config import clamp_int, settings
from planner_core.core.logging import get_logger
from planner_core.llm import prompts
from planner_core.llm.router import ReasoningService, llm_object
from planner_core.llm.schemas import (
    ExecutionContext,
    FlatPlan,
    HierarchicalPlan,
    PlanEvaluation,
    PlanHierarchy,
    PlannerMeta,
    PlanOptimization,
    PlanResult,
    PlanStep,
    StepSpec,
)

log = get_logger("agent.planner")

PlanMode = Literal["plan", "branch"]

_STEP_FIELDS = {
    "title",
    "tool",
    "expected_observation",
    "success_criteria",
    "phase",
    "priority",
    "depends_on",
}


def steps_payload(steps: list[PlanStep], fields: Optional[set[str]] = None) -> list[dict]:
    keep = fields or _STEP_FIELDS
    return [s.model_dump(by_alias=True, mode="json", include=keep) for s in steps]


def specs_payload(specs: list[StepSpec]) -> list[dict]:
    return [s.model_dump(by_alias=True, mode="json", exclude_none=True) for s in specs]


def context_payload(context: Union[ExecutionContext, dict, None]) -> Any:
    if isinstance(context, ExecutionContext):
        return context.wire()
    return context


def _meta_payload(meta: Optional[PlannerMeta]) -> Optional[dict]:
    return meta.wire() if meta is not None else None


def _tools() -> list[str]:
    return list(dict.fromkeys([settings.PRIMARY_TOOL, *settings.ALLOWED_TOOLS]))


def clamp_max_steps(value: Optional[int]) -> int:
    return clamp_int(value, 1, 20, settings.MAX_PLAN_STEPS)


def clamp_max_attempts(value: Optional[int]) -> int:
    return clamp_int(value, 1, 5, clamp_int(settings.MAX_STEP_ATTEMPTS, 1, 5, 2))


# ---------------------------------------------------------------------------
# Best-effort refinement passes
# ---------------------------------------------------------------------------

async def expand_hierarchy(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    specs: list[StepSpec],
    meta: Optional[PlannerMeta],
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[PlanHierarchy]:
    """Group a flat step list into goals/subgoals. None when the pass fails or adds nothing."""
    if not specs:
        return None
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.EXPAND_HIERARCHY_SYSTEM,
            payload={"prompt": objective, "memory": memory, "steps": specs_payload(specs), "meta": _meta_payload(meta)},
        )
        expanded = read_hierarchy(parsed.get("goals"))
        if expanded is None or hierarchy_step_count(expanded) == 0:
            return None
        await record(audit, run_id, "info", "Plan hierarchy expanded.", {"goalCount": len(expanded.goals)})
        return expanded
    except Exception as e:
        log.warning(f"Hierarchy expansion failed: {e}. run_id={run_id}")
        return None


async def enrich_hierarchy(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    hierarchy: PlanHierarchy,
    meta: Optional[PlannerMeta],
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[PlanHierarchy]:
    """Refine titles/criteria. A reply that changes the goal or subgoal counts is discarded."""
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.render(prompts.ENRICH_HIERARCHY_SYSTEM, tool_rule=prompts.tool_rule(_tools())),
            payload={"prompt": objective, "memory": memory, "hierarchy": hierarchy.wire(), "meta": _meta_payload(meta)},
        )
        enriched = read_hierarchy(parsed.get("goals"))
        if enriched is None:
            return None
        if enriched.shape_counts() != hierarchy.shape_counts():
            log.info(
                f"Discarding enriched hierarchy: shape {enriched.shape_counts()} != {hierarchy.shape_counts()}. run_id={run_id}"
            )
            return None
        await record(audit, run_id, "info", "Plan hierarchy enriched.", {"goalCount": len(enriched.goals)})
        return enriched
    except Exception as e:
        log.warning(f"Hierarchy enrichment failed: {e}. run_id={run_id}")
        return None


async def dedupe_steps(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    steps: list[PlanStep],
    meta: Optional[PlannerMeta],
    max_steps: int,
    max_attempts: int,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> list[PlanStep]:
    """Drop redundant steps. Returns ``steps`` itself on failure or an empty answer."""
    if len(steps) < 2:
        return steps
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.DEDUPE_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps),
                "meta": _meta_payload(meta),
                "maxSteps": max_steps,
            },
        )
        specs = read_step_specs(parsed.get("steps"))
        if not specs:
            return steps
        deduped = build_plan_steps(specs, max_attempts=max_attempts)[:max_steps]
        await record(
            audit, run_id, "info", "Plan dedupe completed.",
            {"beforeCount": len(steps), "afterCount": len(deduped)},
        )
        return deduped
    except Exception as e:
        log.warning(f"Plan dedupe failed: {e}. run_id={run_id}")
        return steps


async def guard_repetition(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    current_plan: list[PlanStep],
    candidate_steps: list[PlanStep],
    max_steps: int,
    max_attempts: int,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> list[PlanStep]:
    """Strip candidates that repeat the recent plan or each other; ``candidate_steps`` on failure."""
    if len(candidate_steps) < 2:
        return candidate_steps
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.REPETITION_GUARD_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "recentSteps": steps_payload(current_plan, {"title", "status", "phase"}),
                "candidateSteps": steps_payload(candidate_steps),
                "maxSteps": max_steps,
            },
        )
        specs = read_step_specs(parsed.get("steps"))
        if not specs:
            return candidate_steps
        guarded = build_plan_steps(specs, max_attempts=max_attempts)[:max_steps]
        await record(
            audit, run_id, "info", "Repetition guard applied.",
            {"beforeCount": len(candidate_steps), "afterCount": len(guarded)},
        )
        return guarded
    except Exception as e:
        log.warning(f"Repetition guard failed: {e}. run_id={run_id}")
        return candidate_steps


def _revised_steps(parsed: dict, goals_key: str, steps_key: str, max_steps: int, max_attempts: int) -> list[PlanStep]:
    hierarchy = read_hierarchy(parsed.get(goals_key))
    if hierarchy_step_count(hierarchy) > 0:
        shape: Union[FlatPlan, HierarchicalPlan] = HierarchicalPlan(hierarchy=hierarchy)
    else:
        shape = FlatPlan(steps=read_step_specs(parsed.get(steps_key)))
    return to_plan_steps(shape, max_attempts=max_attempts)[:max_steps]


async def evaluate_plan(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    steps: list[PlanStep],
    hierarchy: Optional[PlanHierarchy],
    meta: Optional[PlannerMeta],
    max_steps: int,
    max_attempts: int,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[PlanEvaluation]:
    """Score the plan 0-100 with optional revisions. None when the pass fails."""
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.EVALUATE_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps),
                "hierarchy": hierarchy.wire() if hierarchy else None,
                "meta": _meta_payload(meta),
                "maxSteps": max_steps,
            },
        )
        raw_score = parsed.get("score")
        score = clamp_int(raw_score, 0, 100, 100) if isinstance(raw_score, (int, float)) else 100
        evaluation = PlanEvaluation(
            score=score,
            issues=normalize_string_list(parsed.get("issues")),
            revised_steps=_revised_steps(parsed, "revisedGoals", "revisedSteps", max_steps, max_attempts),
        )
        await record(
            audit, run_id, "info", "Plan evaluated.",
            {
                "score": evaluation.score,
                "issues": evaluation.issues,
                "revisedSteps": steps_payload(evaluation.revised_steps, {"title", "tool", "phase"}),
            },
        )
        return evaluation
    except Exception as e:
        log.warning(f"Plan evaluation failed: {e}. run_id={run_id}")
        return None


async def optimize_plan(
    llm: ReasoningService,
    *,
    objective: str,
    model: str,
    memory: list[str],
    steps: list[PlanStep],
    hierarchy: Optional[PlanHierarchy],
    meta: Optional[PlannerMeta],
    max_steps: int,
    max_attempts: int,
    run_id: Optional[str] = None,
) -> Optional[PlanOptimization]:
    if len(steps) < 2:
        return None
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=prompts.OPTIMIZE_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps),
                "hierarchy": hierarchy.wire() if hierarchy else None,
                "meta": _meta_payload(meta),
                "maxSteps": max_steps,
            },
        )
        return PlanOptimization(
            reason=parsed.get("reason") if isinstance(parsed.get("reason"), str) else None,
            optimized_steps=_revised_steps(parsed, "optimizedGoals", "optimizedSteps", max_steps, max_attempts),
        )
    except Exception as e:
        log.warning(f"Plan optimization failed: {e}. run_id={run_id}")
        return None


def derive_branch_steps(
    parsed: dict,
    meta: Optional[PlannerMeta],
    max_steps: int,
    max_attempts: int,
) -> list[PlanStep]:
    """
    Contingency steps: the reply's own flat list first (branchSteps, then steps),
    else the deterministic conversion of meta.alternatives.
    """
    limit = min(clamp_int(settings.MAX_BRANCH_STEPS, 1, 4, 4), max_steps)
    specs = read_step_specs(parsed.get("branchSteps")) or read_step_specs(parsed.get("steps"))
    branch = build_plan_steps(specs[:limit], max_attempts=max_attempts)
    if branch:
        return branch
    alternatives = meta.alternatives if meta is not None else []
    return build_branch_steps_from_alternatives(alternatives, max_attempts, limit)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def build_plan(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    model: Optional[str] = None,
    guard_model: Optional[str] = None,
    previous_plan: Optional[list[PlanStep]] = None,
    last_error: Optional[str] = None,
    context: Union[ExecutionContext, dict, None] = None,
    mode: PlanMode = "plan",
    failed_step: Optional[PlanStep] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> PlanResult:
    model = model or settings.LLM_MODEL
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    repetition_model = guard_model.strip() if guard_model and guard_model.strip() else model
    memory = list(memory or [])

    # 1. safety net
    fallback_steps = fallback_plan_steps(objective, limit, attempts)

    # 2. the one load-bearing request
    system = prompts.PLANNER_SYSTEM if mode == "plan" else prompts.BRANCH_SYSTEM
    system = prompts.render(system, max_steps=limit, tool_rule=prompts.tool_rule(_tools()))
    try:
        parsed = await llm_object(
            llm,
            model=model,
            system=system,
            payload={
                "prompt": objective,
                "memory": memory,
                "previousPlan": steps_payload(previous_plan, _STEP_FIELDS | {"status"}) if previous_plan else None,
                "lastError": last_error,
                "browserContext": context_payload(context),
                "maxSteps": limit,
                "mode": mode,
                "failedStep": steps_payload([failed_step], _STEP_FIELDS | {"id"})[0] if failed_step else None,
            },
        )
    except Exception as e:
        log.warning(f"Planner fallback to heuristics: {e}. run_id={run_id}")
        return PlanResult(
            steps=fallback_steps,
            decision=decide_next_action(objective, memory),
            source="heuristic",
            meta=None,
        )

    # 3. meta + optional expansion
    meta = normalize_meta(parsed)
    flat_specs = read_step_specs(parsed.get("steps"))
    hierarchy = read_hierarchy(parsed.get("goals")) if mode == "plan" else None
    if hierarchy is None and mode == "plan" and flat_specs:
        hierarchy = await expand_hierarchy(
            llm, objective=objective, model=model, memory=memory,
            specs=flat_specs, meta=meta, audit=audit, run_id=run_id,
        )

    # 4. enrichment
    if hierarchy is not None:
        enriched = await enrich_hierarchy(
            llm, objective=objective, model=model, memory=memory,
            hierarchy=hierarchy, meta=meta, audit=audit, run_id=run_id,
        )
        if enriched is not None:
            hierarchy = enriched

    # 5. flatten (hierarchy wins over the flat list)
    if hierarchy is not None and hierarchy_step_count(hierarchy) > 0:
        specs = flatten_hierarchy(hierarchy)
    elif mode == "branch":
        specs = read_step_specs(parsed.get("branchSteps")) or flat_specs
    else:
        specs = flat_specs
    steps = build_plan_steps(specs, meta, include_safety=mode == "plan", max_attempts=attempts)[:limit]

    # 6. dedupe
    steps = await dedupe_steps(
        llm, objective=objective, model=repetition_model, memory=memory, steps=steps,
        meta=meta, max_steps=limit, max_attempts=attempts, audit=audit, run_id=run_id,
    )

    # 7. repetition guard
    steps = await guard_repetition(
        llm, objective=objective, model=repetition_model, memory=memory,
        current_plan=steps, candidate_steps=steps, max_steps=limit, max_attempts=attempts,
        audit=audit, run_id=run_id,
    )

    # 8. evaluation + optimization
    if mode == "plan":
        evaluation = await evaluate_plan(
            llm, objective=objective, model=model, memory=memory, steps=steps,
            hierarchy=hierarchy, meta=meta, max_steps=limit, max_attempts=attempts,
            audit=audit, run_id=run_id,
        )
        if evaluation and evaluation.score < settings.EVALUATION_PASS_SCORE and evaluation.revised_steps:
            steps = evaluation.revised_steps
        optimization = await optimize_plan(
            llm, objective=objective, model=repetition_model, memory=memory, steps=steps,
            hierarchy=hierarchy, meta=meta, max_steps=limit, max_attempts=attempts, run_id=run_id,
        )
        if optimization and optimization.optimized_steps:
            steps = optimization.optimized_steps

    # 9. branch steps
    branch_steps = derive_branch_steps(parsed, meta, limit, attempts)

    # 10. decision
    decision = normalize_decision(parsed.get("decision"), steps, objective, memory)

    return PlanResult(
        steps=steps or fallback_steps,
        decision=decision,
        source="reasoning",
        hierarchy=hierarchy,
        meta=meta,
        branch_steps=branch_steps or None,
    )
