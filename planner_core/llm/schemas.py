from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


StepStatus = Literal["pending", "running", "completed", "failed"]
StepPhase = Literal["plan", "observe", "act", "verify", "recover"]
DecisionAction = Literal["tool", "respond", "wait_human"]
TaskType = Literal["web_task", "extract_info"]
Severity = Literal["info", "warning", "error"]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire to and from the reasoning service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self, **kwargs: Any) -> dict:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class PlanStep(CamelModel):
    id: str
    title: str = Field(..., min_length=1)
    status: StepStatus = "pending"
    tool: str
    expected_observation: Optional[str] = None
    success_criteria: Optional[str] = None
    phase: StepPhase = "act"
    priority: Optional[float] = None
    depends_on: List[int] = Field(default_factory=list, description="Strictly-lower flattened indices")
    goal_id: Optional[str] = None
    subgoal_id: Optional[str] = None
    attempts: int = 0
    max_attempts: int = Field(2, ge=1, le=5)


class StepSpec(CamelModel):
    """A step read from a response but not yet placed in a plan (no id, raw references)."""

    ref_id: Optional[str] = Field(None, alias="id", description="Id the model gave the step, if any")
    title: str
    tool: str
    expected_observation: Optional[str] = None
    success_criteria: Optional[str] = None
    phase: Optional[StepPhase] = None
    priority: Optional[float] = None
    depends_on: List[Union[int, str]] = Field(default_factory=list)
    goal_id: Optional[str] = None
    subgoal_id: Optional[str] = None


class Subgoal(CamelModel):
    id: str
    title: str
    success_criteria: Optional[str] = None
    priority: Optional[float] = None
    depends_on: List[Union[int, str]] = Field(default_factory=list)
    steps: List[StepSpec] = Field(default_factory=list)


class Goal(CamelModel):
    id: str
    title: str
    success_criteria: Optional[str] = None
    priority: Optional[float] = None
    depends_on: List[Union[int, str]] = Field(default_factory=list)
    subgoals: List[Subgoal] = Field(default_factory=list)


class PlanHierarchy(CamelModel):
    goals: List[Goal]

    def shape_counts(self) -> list[int]:
        """Subgoal count per goal; the goal count is its length."""
        return [len(g.subgoals) for g in self.goals]


class FlatPlan(CamelModel):
    kind: Literal["flat"] = "flat"
    steps: List[StepSpec]


class HierarchicalPlan(CamelModel):
    kind: Literal["hierarchical"] = "hierarchical"
    hierarchy: PlanHierarchy


PlanShape = Union[FlatPlan, HierarchicalPlan]


class PlannerCritique(CamelModel):
    assumptions: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    unknowns: List[str] = Field(default_factory=list)
    safety_checks: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)


class PlannerAlternative(CamelModel):
    title: str
    rationale: Optional[str] = None
    steps: List[StepSpec] = Field(default_factory=list)


class PlannerMeta(CamelModel):
    critique: Optional[PlannerCritique] = None
    alternatives: List[PlannerAlternative] = Field(default_factory=list)
    safety_checks: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    task_type: Optional[TaskType] = None
    summary: Optional[str] = None
    constraints: List[str] = Field(default_factory=list)
    success_signals: List[str] = Field(default_factory=list)


class AgentDecision(CamelModel):
    action: DecisionAction
    reason: str
    tool_name: Optional[str] = None


class ContextLog(CamelModel):
    level: str = "info"
    message: str = ""


class ExecutionContext(CamelModel):
    """Snapshot of what the executor currently observes; passed to the model verbatim."""

    url: Optional[str] = None
    title: Optional[str] = None
    text_sample: str = ""
    logs: List[ContextLog] = Field(default_factory=list)
    ui_inventory: Any = None


# ---------------------------------------------------------------------------
# Entry-point results
# ---------------------------------------------------------------------------

class PlanResult(CamelModel):
    steps: List[PlanStep]
    decision: AgentDecision
    source: Literal["reasoning", "heuristic"]
    hierarchy: Optional[PlanHierarchy] = None
    meta: Optional[PlannerMeta] = None
    branch_steps: Optional[List[PlanStep]] = None


class PlanEvaluation(CamelModel):
    score: int = Field(100, ge=0, le=100)
    issues: List[str] = Field(default_factory=list)
    revised_steps: List[PlanStep] = Field(default_factory=list)


class PlanOptimization(CamelModel):
    reason: Optional[str] = None
    optimized_steps: List[PlanStep] = Field(default_factory=list)


class ReplanReview(CamelModel):
    should_replan: bool = False
    reason: Optional[str] = None
    steps: List[PlanStep] = Field(default_factory=list)
    hierarchy: Optional[PlanHierarchy] = None
    meta: Optional[PlannerMeta] = None


class ResumeReview(ReplanReview):
    summary: Optional[str] = None


class SelfCheck(CamelModel):
    action: Literal["continue", "replan", "wait_human"] = "continue"
    reason: Optional[str] = None
    notes: Optional[str] = None
    questions: List[str] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    confidence: Optional[int] = Field(None, ge=0, le=100)
    missing_info: List[str] = Field(default_factory=list)
    blockers: List[str] = Field(default_factory=list)
    hypotheses: List[str] = Field(default_factory=list)
    verification_steps: List[str] = Field(default_factory=list)
    tool_switch: Optional[str] = None
    abort_signals: List[str] = Field(default_factory=list)
    finish_signals: List[str] = Field(default_factory=list)
    steps: List[PlanStep] = Field(default_factory=list)
    hierarchy: Optional[PlanHierarchy] = None
    meta: Optional[PlannerMeta] = None


class Adaptation(CamelModel):
    should_adapt: bool = False
    reason: Optional[str] = None
    steps: List[PlanStep] = Field(default_factory=list)
    hierarchy: Optional[PlanHierarchy] = None
    meta: Optional[PlannerMeta] = None


class Verification(CamelModel):
    verdict: Literal["pass", "partial", "fail"]
    evidence: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    follow_up: Optional[str] = None


class LoopSignal(CamelModel):
    reason: str
    pattern: Literal["repeat-same-step", "alternate-two-steps", "same-url-failures"]
    titles: List[str]
    urls: List[Optional[str]]
    statuses: List[StepStatus]


class LoopGuardReview(CamelModel):
    action: Literal["continue", "replan", "wait_human"] = "continue"
    reason: Optional[str] = None
    questions: List[str] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    steps: List[PlanStep] = Field(default_factory=list)
    hierarchy: Optional[PlanHierarchy] = None
    meta: Optional[PlannerMeta] = None


class SelfImprovement(CamelModel):
    summary: str
    mistakes: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    guardrails: List[str] = Field(default_factory=list)
    tool_adjustments: List[str] = Field(default_factory=list)
    confidence: Optional[int] = Field(None, ge=0, le=100)


class CheckpointBrief(CamelModel):
    summary: str
    next_actions: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class StepTrace(CamelModel):
    """One executed step as the loop detector sees it."""

    title: str
    status: StepStatus
    tool: Optional[str] = None
    url: Optional[str] = None
