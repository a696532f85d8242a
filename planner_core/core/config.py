"""
Engine configuration loader and it handles:
- Environment variables
- Reasoning-service settings
- Plan bounds (steps, attempts, branch size)
- Audit storage

And, the main purpose:
Central place for planner configuration.
"""


import math
from typing import Any

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Reasoning service
    LLM_PROVIDER: str = "ollama"  # ollama | openai | mock (offline dev)
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "qwen3-vl:30b"
    LLM_TEMPERATURE: float = 0.2
    LLM_TIMEOUT_SECONDS: float | None = None  # caller bounds the call when unset

    # Tools
    PRIMARY_TOOL: str = "playwright"
    ALLOWED_TOOLS: list[str] = ["playwright", "search"]

    # Plan bounds
    MAX_PLAN_STEPS: int = 12
    MAX_STEP_ATTEMPTS: int = 2
    MAX_BRANCH_STEPS: int = 4
    EVALUATION_PASS_SCORE: int = 70

    # Audit
    AUDIT_DATABASE_URL: str = "sqlite+aiosqlite:///./planner_audit.db"

    DEBUG_PLANNER: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()


def clamp_int(value: Any, lo: int, hi: int, default: int) -> int:
    """Round and clamp ``value`` into [lo, hi]; anything non-numeric yields ``default``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(numeric):
        return default
    return min(max(int(round(numeric)), lo), hi)


class PlanSettings(BaseModel):
    max_steps: int = 12
    max_step_attempts: int = 2
    max_replan_calls: int = 2
    replan_every_steps: int = 2
    max_self_checks: int = 4
    loop_guard_threshold: int = 2
    loop_backoff_base_ms: int = 2000
    loop_backoff_max_ms: int = 12000


# (camelCase key, attribute, lo, hi)
_PLAN_SETTING_BOUNDS = [
    ("maxSteps", "max_steps", 1, 20),
    ("maxStepAttempts", "max_step_attempts", 1, 5),
    ("maxReplanCalls", "max_replan_calls", 0, 6),
    ("replanEverySteps", "replan_every_steps", 1, 10),
    ("maxSelfChecks", "max_self_checks", 0, 8),
    ("loopGuardThreshold", "loop_guard_threshold", 1, 5),
    ("loopBackoffBaseMs", "loop_backoff_base_ms", 250, 20000),
    ("loopBackoffMaxMs", "loop_backoff_max_ms", 1000, 60000),
]


def resolve_plan_settings(raw: Any) -> PlanSettings:
    """
    Build per-run settings from an untrusted mapping (camelCase or snake_case keys).
    Every value is clamped into its allowed range; missing or junk values use defaults.
    """
    source = raw if isinstance(raw, dict) else {}
    defaults = PlanSettings(
        max_steps=settings.MAX_PLAN_STEPS,
        max_step_attempts=clamp_int(settings.MAX_STEP_ATTEMPTS, 1, 5, 2),
    )
    resolved: dict[str, int] = {}
    for camel, attr, lo, hi in _PLAN_SETTING_BOUNDS:
        value = source.get(camel, source.get(attr))
        resolved[attr] = clamp_int(value, lo, hi, getattr(defaults, attr))
    return PlanSettings(**resolved)
