from planner_core.agent.heuristics import (
    BROWSE_STEPS,
    EXTRACT_STEPS,
    LOGIN_STEPS,
    append_task_type,
    build_fallback_plan,
    decide_next_action,
    fallback_plan_steps,
    is_extraction_step,
    should_evaluate_replan,
)
from tests.fakes import make_steps


def test_login_objective():
    assert build_fallback_plan("Sign in to my bank account") == LOGIN_STEPS


def test_browse_objective():
    assert build_fallback_plan("Browse the company website for news") == BROWSE_STEPS


def test_extraction_objective():
    assert build_fallback_plan("find the current price of item X on site Y") == EXTRACT_STEPS


def test_sentences_become_steps_and_are_capped():
    objective = "Open the dashboard. Export the report! Email it to finance? Archive it."
    assert build_fallback_plan(objective) == [
        "Open the dashboard",
        "Export the report",
        "Email it to finance",
        "Archive it.",
    ]
    assert len(build_fallback_plan(objective, max_steps=2)) == 2


def test_blank_objective_has_no_plan():
    assert build_fallback_plan("   ") == []


def test_fallback_is_deterministic_apart_from_ids():
    a = fallback_plan_steps("Log in to the portal", max_steps=3, max_attempts=4)
    b = fallback_plan_steps("Log in to the portal", max_steps=3, max_attempts=4)
    assert [s.title for s in a] == [s.title for s in b] == LOGIN_STEPS[:3]
    assert all(s.tool == "playwright" and s.max_attempts == 4 and s.depends_on == [] for s in a)
    assert {s.id for s in a}.isdisjoint({s.id for s in b})


def test_decide_next_action():
    assert decide_next_action("browse the website", []).action == "tool"
    assert decide_next_action("please log in", []).tool_name == "playwright"
    assert decide_next_action("summarize", ["note"]).action == "respond"
    assert decide_next_action("summarize", []).action == "wait_human"


def test_should_evaluate_replan():
    steps = make_steps("a", "b", "c", "d", "e")
    assert should_evaluate_replan(1, steps, 2) is True
    assert should_evaluate_replan(0, steps, 2) is False
    assert should_evaluate_replan(4, steps, 1) is False
    assert should_evaluate_replan(1, steps[:2], 1) is False


def test_is_extraction_step_and_task_type_hint():
    step = make_steps("Collect product prices")[0]
    assert is_extraction_step(step, "", None)
    assert is_extraction_step(make_steps("Open page")[0], "", "extract_info")
    assert not is_extraction_step(make_steps("Open page")[0], "say hi", None)
    assert append_task_type("Do it", "web_task") == "Do it\n\nTask type: web_task"
    assert append_task_type("Do it", None) == "Do it"
