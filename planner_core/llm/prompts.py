
STEP_SCHEMA = "{title, tool, expectedObservation, successCriteria, phase, priority, dependsOn}"

GOALS_SCHEMA = (
    "array of {title, successCriteria, priority, dependsOn, "
    f"subgoals:[{{title, successCriteria, priority, dependsOn, steps:[{STEP_SCHEMA}]}}]}}"
)

META_KEYS = """critique: {assumptions[], risks[], unknowns[], safetyChecks[], questions[]}.
alternatives: array of {title, rationale, steps:[%s]}.
taskType is 'web_task' or 'extract_info'.
summary is a 1-2 sentence plan summary.
constraints is an array of key constraints.
successSignals is a list of observable success indicators.""" % STEP_SCHEMA

DEPENDENCY_RULES = """Dependency rules:
- dependsOn lists earlier steps only, as 0-based indices of the sibling steps or their exact titles.
- phase is one of 'plan', 'observe', 'act', 'verify', 'recover'."""


def tool_rule(tools: list[str]) -> str:
    names = ", ".join(f"'{t}'" for t in tools)
    return f"tool is one of {names} or 'none'."


PLANNER_SYSTEM = """You are an agent planner.

Return ONLY valid JSON with keys: decision, goals, critique, alternatives, taskType, summary, constraints, successSignals.
decision: {action, reason, toolName}. action is 'tool', 'respond' or 'wait_human'.
goals: %s
%s

Rules:
- Use 2-4 goals, 1-3 subgoals each, and at most {max_steps} steps in total.
- If you cannot provide goals, you may instead include steps: array of %s.
- {tool_rule}
%s
""" % (GOALS_SCHEMA, META_KEYS, STEP_SCHEMA, DEPENDENCY_RULES)


BRANCH_SYSTEM = """You are an agent planner recovering from a failed step.

Return ONLY valid JSON with keys: decision, branchSteps, critique, alternatives, taskType, summary, constraints, successSignals.
decision: {action, reason, toolName}. action is 'tool', 'respond' or 'wait_human'.
branchSteps: array of %s.
%s

Rules:
- Provide 1-4 alternate steps that recover from failedStep.
- {tool_rule}
%s
""" % (STEP_SCHEMA, META_KEYS, DEPENDENCY_RULES)


EXPAND_HIERARCHY_SYSTEM = """You convert flat steps into a goal hierarchy.

Return ONLY valid JSON with keys: goals.
goals is %s.
Keep 2-4 goals and keep steps unchanged where possible.
""" % GOALS_SCHEMA


ENRICH_HIERARCHY_SYSTEM = """You enrich goal hierarchies for execution.

Return ONLY valid JSON with keys: goals.
goals is %s.
Keep the same number of goals and the same number of subgoals in each goal; refine titles, success criteria and steps.
{tool_rule}
""" % GOALS_SCHEMA


DEDUPE_SYSTEM = """You remove redundant plan steps.

Return ONLY valid JSON with keys: steps.
steps is an array of %s.
Remove duplicates and steps already covered. Keep the original order.
""" % STEP_SCHEMA


REPETITION_GUARD_SYSTEM = """You remove unnecessary repetition from plan steps.

Return ONLY valid JSON with keys: steps.
steps is an array of %s.
recentSteps are already part of the run. Remove candidate steps that duplicate them or each other.
""" % STEP_SCHEMA


EVALUATE_SYSTEM = """You evaluate plans.

Return ONLY valid JSON with keys: score, issues, revisedGoals, revisedSteps.
score is 0-100. issues is an array of short strings.
revisedGoals uses the planner goal schema: %s.
revisedSteps is an array of %s.
Only include revisions when the score is below 70.
""" % (GOALS_SCHEMA, STEP_SCHEMA)


OPTIMIZE_SYSTEM = """You optimize action plans.

Return ONLY valid JSON with keys: reason, optimizedGoals, optimizedSteps.
optimizedGoals uses the planner goal schema: %s.
optimizedSteps is an array of %s.
Keep steps concise, remove redundancy, and preserve constraints.
""" % (GOALS_SCHEMA, STEP_SCHEMA)


_REPLAN_TAIL = """If the flag is true, include goals (%s) or steps: array of %s.
%s
%s""" % (GOALS_SCHEMA, STEP_SCHEMA, META_KEYS, DEPENDENCY_RULES)


REPLAN_REVIEW_SYSTEM = """You are an agent replanner.

Return ONLY valid JSON with keys: shouldReplan, reason, goals, steps, critique, alternatives, taskType, summary, constraints, successSignals.
shouldReplan is boolean.
The user input includes trigger and signals fields; use them to focus the replan.
""" + _REPLAN_TAIL


RESUME_REVIEW_SYSTEM = """You are an agent resume planner. The run was paused and is about to continue.

Return ONLY valid JSON with keys: shouldReplan, reason, goals, steps, critique, alternatives, taskType, summary, constraints, successSignals.
shouldReplan is boolean. summary briefly states where the run stands.
""" + _REPLAN_TAIL


SELF_CHECK_SYSTEM = """You are an agent self-checker.

Return ONLY valid JSON with keys: action, reason, notes, questions, evidence, confidence, missingInfo, blockers, hypotheses, verificationSteps, toolSwitch, abortSignals, finishSignals, goals, steps, critique, alternatives, taskType, summary, constraints, successSignals.
action is 'continue', 'replan' or 'wait_human'.
questions: 5-8 self-questions that test assumptions, evidence quality, tool choice and completion criteria.
evidence is a list of observable facts from the context. confidence is 0-100.
toolSwitch is a short suggestion like 'use search' or 'use playwright'.
abortSignals are conditions that should stop the run. finishSignals are conditions that show the goal is satisfied.
If action is 'replan', include goals (%s) or steps: array of %s.
%s
""" % (GOALS_SCHEMA, STEP_SCHEMA, META_KEYS)


MID_RUN_SYSTEM = """You are a mid-run adaptation planner.

Return ONLY valid JSON with keys: shouldAdapt, reason, goals, steps, critique, alternatives, taskType, summary, constraints, successSignals.
shouldAdapt is boolean.
""" + _REPLAN_TAIL


LOOP_GUARD_SYSTEM = """You are an agent loop guard. The run appears stuck in a loop described by loopSignal.

Return ONLY valid JSON with keys: action, reason, questions, evidence, goals, steps, critique, alternatives, taskType, summary, constraints, successSignals.
action is 'continue', 'replan' or 'wait_human'.
If action is 'replan', include goals (%s) or steps: array of %s that break the loop.
%s
""" % (GOALS_SCHEMA, STEP_SCHEMA, META_KEYS)


VERIFY_SYSTEM = """You verify task completion.

Return ONLY valid JSON with keys: verdict, evidence, missing, followUp.
verdict is 'pass', 'partial' or 'fail'.
Evidence must reference observable facts from the context.
"""


SELF_IMPROVEMENT_SYSTEM = """You are an agent self-improvement reviewer.

Return ONLY valid JSON with keys: summary, mistakes, improvements, guardrails, toolAdjustments, confidence.
summary is a 1-2 sentence learning summary.
mistakes, improvements, guardrails, toolAdjustments are short bullet strings.
confidence is 0-100.
"""


MEMORY_SUMMARY_SYSTEM = """You summarize progress for long-running plans.

Return ONLY valid JSON with keys: summary, keyDecisions, risks.
Keep summary under 80 words.
"""


CHECKPOINT_SYSTEM = """You generate checkpoint briefs.

Return ONLY valid JSON with keys: summary, nextActions, risks.
summary should be 1-2 sentences. nextActions are concrete next steps.
"""


def render(template: str, **values) -> str:
    """Fill {placeholders} without tripping over the literal braces in the schemas."""
    out = template
    for key, value in values.items():
        out = out.replace("{" + key + "}", str(value))
    return out
