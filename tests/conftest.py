import pytest

from planner_core.core.config import settings
from tests.fakes import FakeReasoningService, RecordingAuditSink


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    monkeypatch.setattr(settings, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(settings, "LLM_MODEL", "test-model")
    monkeypatch.setattr(settings, "PRIMARY_TOOL", "playwright")
    monkeypatch.setattr(settings, "ALLOWED_TOOLS", ["playwright", "search"])
    monkeypatch.setattr(settings, "MAX_PLAN_STEPS", 12)
    monkeypatch.setattr(settings, "MAX_STEP_ATTEMPTS", 2)
    monkeypatch.setattr(settings, "MAX_BRANCH_STEPS", 4)
    monkeypatch.setattr(settings, "EVALUATION_PASS_SCORE", 70)
    return settings


@pytest.fixture
def fake_llm():
    def _factory(responses=None, default="{}"):
        return FakeReasoningService(responses, default=default)

    return _factory


@pytest.fixture
def audit():
    return RecordingAuditSink()

