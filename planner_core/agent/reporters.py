"""
Retrospective write-ups produced around a run: the self-improvement review
at the end, the rolling memory summary, and checkpoint briefs.

Each returns None when the reply has no summary or anything goes wrong,
audit append included.
"""


from typing import Any, Optional

from planner_core.agent.normalize import normalize_confidence, normalize_string_list, normalize_text
from planner_core.agent.planner import context_payload, steps_payload
from planner_core.agent.tracer import AuditSink, emit
from planner_core.core.config import settings
from planner_core.core.logging import get_logger
from planner_core.llm import prompts
from planner_core.llm.router import ReasoningService, llm_object
from planner_core.llm.schemas import CheckpointBrief, PlanStep, SelfImprovement, Verification

log = get_logger("agent.reporters")


async def review_self_improvement(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    steps: list[PlanStep],
    model: Optional[str] = None,
    verification: Optional[Verification] = None,
    task_type: Optional[str] = None,
    last_error: Optional[str] = None,
    context: Any = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[SelfImprovement]:
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.SELF_IMPROVEMENT_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps, {"title", "status", "phase", "success_criteria"}),
                "taskType": task_type,
                "lastError": last_error,
                "verification": verification.wire() if verification is not None else None,
                "browserContext": context_payload(context),
            },
        )
        summary = normalize_text(parsed.get("summary"))
        if not summary:
            return None
        review = SelfImprovement(
            summary=summary,
            mistakes=normalize_string_list(parsed.get("mistakes")),
            improvements=normalize_string_list(parsed.get("improvements")),
            guardrails=normalize_string_list(parsed.get("guardrails")),
            tool_adjustments=normalize_string_list(parsed.get("toolAdjustments")),
            confidence=normalize_confidence(parsed.get("confidence")),
        )
        await emit(audit, run_id, "info", "Self-improvement review created.", review.wire())
        return review
    except Exception as e:
        log.warning(f"Self-improvement review failed: {e}. run_id={run_id}")
        return None


async def summarize_memory(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    steps: list[PlanStep],
    model: Optional[str] = None,
    context: Any = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[str]:
    """
    Compress progress into one memory entry:
        <summary>
        Decisions: a | b
        Risks: x | y
    Empty sections are left out.
    """
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.MEMORY_SUMMARY_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps, {"title", "status", "phase"}),
                "browserContext": context_payload(context),
            },
        )
        summary = normalize_text(parsed.get("summary"))
        if not summary:
            return None
        decisions = normalize_string_list(parsed.get("keyDecisions"))
        risks = normalize_string_list(parsed.get("risks"))
        lines = [summary]
        if decisions:
            lines.append(f"Decisions: {' | '.join(decisions)}")
        if risks:
            lines.append(f"Risks: {' | '.join(risks)}")
        await emit(
            audit, run_id, "info", "Planner memory summary created.",
            {"summary": summary, "keyDecisions": decisions, "risks": risks},
        )
        return "\n".join(lines)
    except Exception as e:
        log.warning(f"Planner memory summary failed: {e}. run_id={run_id}")
        return None


async def build_checkpoint_brief(
    llm: ReasoningService,
    *,
    objective: str,
    memory: list[str],
    steps: list[PlanStep],
    model: Optional[str] = None,
    active_step_id: Optional[str] = None,
    last_error: Optional[str] = None,
    context: Any = None,
    audit: Optional[AuditSink] = None,
    run_id: Optional[str] = None,
) -> Optional[CheckpointBrief]:
    try:
        parsed = await llm_object(
            llm,
            model=model or settings.LLM_MODEL,
            system=prompts.CHECKPOINT_SYSTEM,
            payload={
                "prompt": objective,
                "memory": memory,
                "steps": steps_payload(steps, {"id", "title", "status", "phase"}),
                "activeStepId": active_step_id,
                "lastError": last_error,
                "browserContext": context_payload(context),
            },
        )
        summary = normalize_text(parsed.get("summary"))
        if not summary:
            return None
        brief = CheckpointBrief(
            summary=summary,
            next_actions=normalize_string_list(parsed.get("nextActions")),
            risks=normalize_string_list(parsed.get("risks")),
        )
        await emit(audit, run_id, "info", "Checkpoint brief created.", brief.wire())
        return brief
    except Exception as e:
        log.warning(f"Checkpoint brief failed: {e}. run_id={run_id}")
        return None
