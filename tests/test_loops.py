from planner_core.agent.loops import detect_loop_pattern
from planner_core.llm.schemas import StepTrace


def _t(title, status="completed", url="https://shop.test/"):
    return {"title": title, "status": status, "url": url}


def test_short_history_is_not_a_loop():
    assert detect_loop_pattern([_t("Open"), _t("Open")]) is None


def test_repeat_same_step_ignores_case():
    signal = detect_loop_pattern([_t("Search"), _t("Open result"), _t("open result"), _t("OPEN RESULT")])
    assert signal is not None
    assert signal.pattern == "repeat-same-step"
    assert signal.titles == ["Open result", "open result", "OPEN RESULT"]


def test_alternating_two_steps():
    trace = [_t("Open menu"), _t("Close menu"), _t("Open menu"), _t("Close menu")]
    signal = detect_loop_pattern(trace)
    assert signal is not None
    assert signal.pattern == "alternate-two-steps"
    assert len(signal.titles) == 4


def test_same_url_failures():
    trace = [
        StepTrace(title="Click buy", status="failed", url="https://shop.test/p/1"),
        StepTrace(title="Scroll", status="completed", url="https://shop.test/p/1"),
        StepTrace(title="Click checkout", status="failed", url="https://shop.test/p/1"),
    ]
    signal = detect_loop_pattern(trace)
    assert signal is not None
    assert signal.pattern == "same-url-failures"
    assert signal.statuses == ["failed", "completed", "failed"]


def test_failures_without_url_are_not_a_loop():
    trace = [_t("A", "failed", None), _t("B", "failed", None), _t("C", "failed", None)]
    assert detect_loop_pattern(trace) is None


def test_progress_is_not_a_loop():
    trace = [_t("Open", url="https://a.test"), _t("Search", url="https://a.test"), _t("Read", url="https://b.test")]
    assert detect_loop_pattern(trace) is None
