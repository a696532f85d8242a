"""Spots the executor going in circles over its most recent steps."""


from typing import Iterable, Optional, Union

from planner_core.llm.schemas import LoopSignal, StepTrace


def _trace(item: Union[StepTrace, dict]) -> StepTrace:
    return item if isinstance(item, StepTrace) else StepTrace.model_validate(item)


def _signal(reason: str, pattern: str, window: list[StepTrace]) -> LoopSignal:
    return LoopSignal(
        reason=reason,
        pattern=pattern,
        titles=[t.title for t in window],
        urls=[t.url for t in window],
        statuses=[t.status for t in window],
    )


def detect_loop_pattern(recent: Iterable[Union[StepTrace, dict]]) -> Optional[LoopSignal]:
    """
    Checked in order over the tail of ``recent`` (oldest first):
    - last three titles equal, ignoring case -> repeat-same-step
    - last four go A, B, A, B -> alternate-two-steps
    - last three on one url with at least two failures -> same-url-failures
    """
    trace = [_trace(item) for item in recent]
    if len(trace) < 3:
        return None
    last_three = trace[-3:]
    titles = [t.title.lower() for t in last_three]
    if len(set(titles)) == 1:
        return _signal("Repeated the same step multiple times.", "repeat-same-step", last_three)

    if len(trace) >= 4:
        last_four = trace[-4:]
        a, b, c, d = (t.title.lower() for t in last_four)
        if a == c and b == d and a != b:
            return _signal("Alternating between the same two steps.", "alternate-two-steps", last_four)

    first_url = last_three[0].url
    failures = sum(1 for t in last_three if t.status == "failed")
    if first_url and all(t.url == first_url for t in last_three) and failures >= 2:
        return _signal("Repeated failures on the same URL.", "same-url-failures", last_three)
    return None
