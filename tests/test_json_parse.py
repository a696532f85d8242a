from planner_core.llm.json_parse import UNPARSABLE, is_unparsable, parse_json_payload


def test_plain_object():
    assert parse_json_payload('{"steps": []}') == {"steps": []}


def test_fenced_block_wins_over_surrounding_prose():
    text = 'Here is the plan {not json}\n```json\n{"score": 80}\n```\nThanks!'
    assert parse_json_payload(text) == {"score": 80}


def test_object_embedded_in_prose_with_trailing_text():
    text = 'Sure. {"action": "continue", "reason": "ok"} Let me know if you need more.'
    assert parse_json_payload(text) == {"action": "continue", "reason": "ok"}


def test_top_level_array():
    assert parse_json_payload("result: [1, 2, 3] done") == [1, 2, 3]


def test_skips_broken_brace_before_valid_value():
    assert parse_json_payload('{oops {"ok": true}') == {"ok": True}


def test_no_json_is_unparsable():
    assert parse_json_payload("I could not build a plan.") is UNPARSABLE
    assert parse_json_payload("") is UNPARSABLE
    assert parse_json_payload(None) is UNPARSABLE
    assert is_unparsable(parse_json_payload("{{{"))


def test_unparsable_is_falsy_singleton():
    assert not UNPARSABLE
    assert repr(UNPARSABLE) == "UNPARSABLE"
    assert type(UNPARSABLE)() is UNPARSABLE


def test_json_literal_null_is_not_unparsable():
    # a bare literal is valid JSON text; callers decide whether it is useful
    assert parse_json_payload("null") is None
