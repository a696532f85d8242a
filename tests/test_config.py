import math

from planner_core.core.config import Settings, clamp_int, resolve_plan_settings


def test_settings_defaults(monkeypatch):
    for key in ("LLM_PROVIDER", "LLM_TIMEOUT_SECONDS", "MAX_PLAN_STEPS", "PRIMARY_TOOL"):
        monkeypatch.delenv(key, raising=False)
    s = Settings(_env_file=None)
    assert s.LLM_PROVIDER == "ollama"
    assert s.LLM_TEMPERATURE == 0.2
    assert s.LLM_TIMEOUT_SECONDS is None
    assert s.MAX_PLAN_STEPS == 12
    assert s.MAX_STEP_ATTEMPTS == 2
    assert s.MAX_BRANCH_STEPS == 4
    assert s.EVALUATION_PASS_SCORE == 70
    assert s.ALLOWED_TOOLS == ["playwright", "search"]


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("MAX_PLAN_STEPS", "7")
    s = Settings(_env_file=None)
    assert s.LLM_PROVIDER == "openai"
    assert s.MAX_PLAN_STEPS == 7


def test_clamp_int():
    assert clamp_int(50, 1, 20, 12) == 20
    assert clamp_int(-3, 1, 20, 12) == 1
    assert clamp_int("4", 1, 20, 12) == 4
    assert clamp_int(" 2.6 ", 1, 20, 12) == 3
    assert clamp_int("many", 1, 20, 12) == 12
    assert clamp_int(None, 1, 20, 12) == 12
    assert clamp_int(True, 1, 20, 12) == 12
    assert clamp_int(math.inf, 1, 20, 12) == 12
    assert clamp_int(float("nan"), 1, 20, 12) == 12


def test_resolve_plan_settings_clamps_each_bound():
    resolved = resolve_plan_settings(
        {
            "maxSteps": 99,
            "maxStepAttempts": 0,
            "max_replan_calls": "3",
            "replanEverySteps": "junk",
            "loopBackoffBaseMs": 10,
            "loopBackoffMaxMs": 10**9,
        }
    )
    assert resolved.max_steps == 20
    assert resolved.max_step_attempts == 1
    assert resolved.max_replan_calls == 3
    assert resolved.replan_every_steps == 2
    assert resolved.loop_backoff_base_ms == 250
    assert resolved.loop_backoff_max_ms == 60000


def test_resolve_plan_settings_defaults_for_non_mapping():
    resolved = resolve_plan_settings(None)
    assert resolved.max_steps == 12
    assert resolved.max_step_attempts == 2
    assert resolved.max_self_checks == 4
