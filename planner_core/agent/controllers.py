"""
Advisory reviews the execution loop runs while a plan is in flight.
What it provides:
- review_progress: replan after N steps or on a trigger
- self_check: per-step self-assessment with confidence and evidence
- review_resume: re-check the plan when a paused run resumes
- adapt_mid_run: signal-driven adaptation of the remaining steps
- verify_plan: pass/partial/fail verdict at the end of a run
- review_loop_guard: break out of a detected loop

Every review has a conservative default ("continue", no replan, None) and
returns it on any failure. A request to replan that carries no usable steps
is downgraded to "continue"; nothing here escalates to a human on its own.
"""


from typing import Any, Optional, Union

from planner_core.agent.normalize import (
    build_branch_steps_from_alternatives,
    normalize_confidence,
    normalize_meta,
    normalize_string_list,
    normalize_text,
    read_plan_shape,
    to_plan_steps,
)
from planner_core.agent.planner import clamp_max_attempts, clamp_max_steps, context_payload, steps_payload
from planner_core.agent.tracer import AuditSink, record
from planner_core.core.config import settings
from planner_core.core.logging import get_logger
from planner_core.llm import prompts
from planner_core.llm.router import ReasoningService, llm_json, llm_object
from planner_core.llm.schemas import (
    Adaptation,
    ExecutionContext,
    HierarchicalPlan,
    LoopGuardReview,
    LoopSignal,
    PlanHierarchy,
    PlannerMeta,
    PlanStep,
    ReplanReview,
    ResumeReview,
    SelfCheck,
    Verification,
)

log = get_logger("agent.controllers")

_PLAN_VIEW = {"title", "status", "tool", "expected_observation", "success_criteria"}

Context = Union[ExecutionContext, dict, None]


def _replacement(
    parsed: dict,
    meta: PlannerMeta,
    max_steps: int,
    max_attempts: int,
) -> tuple[list[PlanStep], Optional[PlanHierarchy]]:
    """Replacement steps from goals or steps; alternatives are the fallback when both are empty."""
    shape = read_plan_shape(parsed)
    hierarchy = shape.hierarchy if isinstance(shape, HierarchicalPlan) else None
    steps = to_plan_steps(shape, meta, include_safety=True, max_attempts=max_attempts)[:max_steps]
    if not steps:
        steps = build_branch_steps_from_alternatives(meta.alternatives, max_attempts, max_steps)
    return steps, hierarchy


def _flag(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.strip().lower() == "true")


def _action(value: Any) -> str:
    return value if value in ("replan", "wait_human") else "continue"


async def review_progress(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    current_plan: list[PlanStep],
    completed_index: int,
    model: Optional[str] = None,
    context: Context = None,
    trigger: Optional[str] = None,
    signals: Optional[dict[str, Any]] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    run_id: Optional[str] = None,
) -> ReplanReview:
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.REPLAN_REVIEW_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "trigger": trigger,
                "signals": signals or {},
                "browserContext": context_payload(context),
                "completedStepIndex": completed_index,
                "currentPlan": steps_payload(current_plan, _PLAN_VIEW),
                "maxSteps": limit,
            },
        )
    except Exception as e:
        log.warning(f"Replan review fallback: {e}. run_id={run_id}")
        return ReplanReview()

    reason = normalize_text(parsed.get("reason"))
    if not _flag(parsed.get("shouldReplan")):
        return ReplanReview(should_replan=False, reason=reason, meta=normalize_meta(parsed))
    meta = normalize_meta(parsed)
    steps, hierarchy = _replacement(parsed, meta, limit, attempts)
    if not steps:
        return ReplanReview(should_replan=False, reason=reason)
    return ReplanReview(should_replan=True, reason=reason, steps=steps, hierarchy=hierarchy, meta=meta)


async def review_resume(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    current_plan: list[PlanStep],
    completed_index: int,
    model: Optional[str] = None,
    context: Context = None,
    last_error: Optional[str] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    run_id: Optional[str] = None,
) -> ResumeReview:
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.RESUME_REVIEW_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "browserContext": context_payload(context),
                "lastError": last_error,
                "completedStepIndex": completed_index,
                "currentPlan": steps_payload(current_plan, _PLAN_VIEW),
                "maxSteps": limit,
            },
        )
    except Exception as e:
        log.warning(f"Resume review fallback: {e}. run_id={run_id}")
        return ResumeReview()

    reason = normalize_text(parsed.get("reason"))
    summary = normalize_text(parsed.get("summary"))
    if not _flag(parsed.get("shouldReplan")):
        return ResumeReview(should_replan=False, reason=reason, summary=summary, meta=normalize_meta(parsed))
    meta = normalize_meta(parsed)
    steps, hierarchy = _replacement(parsed, meta, limit, attempts)
    if not steps:
        return ResumeReview(should_replan=False, reason=reason, summary=summary)
    return ResumeReview(
        should_replan=True, reason=reason, summary=summary, steps=steps, hierarchy=hierarchy, meta=meta
    )


async def self_check(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    step: PlanStep,
    step_index: int,
    model: Optional[str] = None,
    context: Context = None,
    last_error: Optional[str] = None,
    task_type: Optional[str] = None,
    completed_count: Optional[int] = None,
    previous_url: Optional[str] = None,
    last_context_url: Optional[str] = None,
    stagnation_count: Optional[int] = None,
    no_context_count: Optional[int] = None,
    replan_count: Optional[int] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    run_id: Optional[str] = None,
) -> SelfCheck:
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.SELF_CHECK_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "browserContext": context_payload(context),
                "taskType": task_type,
                "lastError": last_error,
                "completedCount": completed_count,
                "previousUrl": previous_url,
                "lastContextUrl": last_context_url,
                "stagnationCount": stagnation_count,
                "noContextCount": no_context_count,
                "replanCount": replan_count,
                "step": steps_payload([step], _PLAN_VIEW | {"id"})[0],
                "stepIndex": step_index,
                "maxSteps": limit,
            },
        )
    except Exception as e:
        log.warning(f"Self-check fallback: {e}. run_id={run_id}")
        return SelfCheck()

    action = _action(parsed.get("action"))
    meta = normalize_meta(parsed)
    steps: list[PlanStep] = []
    hierarchy = None
    if action == "replan":
        steps, hierarchy = _replacement(parsed, meta, limit, attempts)
        if not steps:
            log.info(f"Self-check asked to replan without usable steps; continuing. run_id={run_id}")
            action = "continue"

    tool_switch = parsed.get("toolSwitch")
    return SelfCheck(
        action=action,
        reason=normalize_text(parsed.get("reason")),
        notes=normalize_text(parsed.get("notes")),
        questions=normalize_string_list(parsed.get("questions")),
        evidence=normalize_string_list(parsed.get("evidence")),
        confidence=normalize_confidence(parsed.get("confidence")),
        missing_info=normalize_string_list(parsed.get("missingInfo")),
        blockers=normalize_string_list(parsed.get("blockers")),
        hypotheses=normalize_string_list(parsed.get("hypotheses")),
        verification_steps=normalize_string_list(parsed.get("verificationSteps")),
        tool_switch=normalize_text(tool_switch),
        abort_signals=normalize_string_list(parsed.get("abortSignals")),
        finish_signals=normalize_string_list(parsed.get("finishSignals")),
        steps=steps,
        hierarchy=hierarchy,
        meta=meta,
    )


async def adapt_mid_run(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    steps: list[PlanStep],
    model: Optional[str] = None,
    context: Context = None,
    signals: Optional[dict[str, Any]] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Adaptation:
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.MID_RUN_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps, _PLAN_VIEW),
                "signals": signals or {},
                "browserContext": context_payload(context),
                "maxSteps": limit,
            },
        )
        if not _flag(parsed.get("shouldAdapt")):
            return Adaptation(should_adapt=False, reason=normalize_text(parsed.get("reason")))
        meta = normalize_meta(parsed)
        new_steps, hierarchy = _replacement(parsed, meta, limit, attempts)
        reason = normalize_text(parsed.get("reason"))
        if not new_steps:
            return Adaptation(should_adapt=False, reason=reason)
        await record(
            audit, run_id, "info", "Mid-run adaptation proposed.",
            {"reason": reason, "beforeCount": len(steps), "afterCount": len(new_steps)},
        )
        return Adaptation(should_adapt=True, reason=reason, steps=new_steps, hierarchy=hierarchy, meta=meta)
    except Exception as e:
        log.warning(f"Mid-run adaptation fallback: {e}. run_id={run_id}")
        return Adaptation()


async def verify_plan(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    steps: list[PlanStep],
    model: Optional[str] = None,
    context: Context = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[Verification]:
    """
    None means "unverified" (no steps, failed call, no JSON, or no verdict);
    callers must not read it as fail. A verdict other than pass/partial is fail.
    """
    if not steps:
        return None
    try:
        parsed = await llm_json(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.VERIFY_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps, {"title", "status", "expected_observation", "success_criteria", "phase"}),
                "browserContext": context_payload(context),
            },
        )
        if not isinstance(parsed, dict):
            return None
        verdict = normalize_text(parsed.get("verdict"))
        if verdict is None:
            return None
        verdict = verdict.lower()
        verification = Verification(
            verdict=verdict if verdict in ("pass", "partial") else "fail",
            evidence=normalize_string_list(parsed.get("evidence")),
            missing=normalize_string_list(parsed.get("missing")),
            follow_up=normalize_text(parsed.get("followUp")),
        )
        await record(
            audit, run_id, "info" if verification.verdict == "pass" else "warning",
            "Plan verification completed.",
            verification.wire(),
        )
        return verification
    except Exception as e:
        log.warning(f"Plan verification failed: {e}. run_id={run_id}")
        return None


async def review_loop_guard(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    current_plan: list[PlanStep],
    completed_index: int,
    loop_signal: LoopSignal,
    model: Optional[str] = None,
    context: Context = None,
    last_error: Optional[str] = None,
    max_steps: Optional[int] = None,
    max_attempts: Optional[int] = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> LoopGuardReview:
    limit = clamp_max_steps(max_steps)
    attempts = clamp_max_attempts(max_attempts)
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.LOOP_GUARD_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "browserContext": context_payload(context),
                "lastError": last_error,
                "loopSignal": loop_signal.wire(),
                "completedStepIndex": completed_index,
                "currentPlan": steps_payload(current_plan, _PLAN_VIEW),
                "maxSteps": limit,
            },
        )
        action = _action(parsed.get("action"))
        meta = normalize_meta(parsed)
        steps: list[PlanStep] = []
        hierarchy = None
        if action == "replan":
            steps, hierarchy = _replacement(parsed, meta, limit, attempts)
            if not steps:
                action = "continue"
        reason = normalize_text(parsed.get("reason"))
        await record(
            audit, run_id, "info", "Loop guard completed.",
            {"action": action, "reason": reason, "loop": loop_signal.wire()},
        )
        return LoopGuardReview(
            action=action,
            reason=reason,
            questions=normalize_string_list(parsed.get("questions")),
            evidence=normalize_string_list(parsed.get("evidence")),
            steps=steps,
            hierarchy=hierarchy,
            meta=meta,
        )
    except Exception as e:
        log.warning(f"Loop guard fallback: {e}. run_id={run_id}")
        return LoopGuardReview()
