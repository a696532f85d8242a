from planner_core.agent.normalize import (
    DEFAULT_GOAL_TITLE,
    DEFAULT_STEP_TITLE,
    DEFAULT_SUBGOAL_TITLE,
    build_branch_steps_from_alternatives,
    build_plan_steps,
    flatten_hierarchy,
    normalize_decision,
    normalize_meta,
    normalize_steps,
    normalize_tool,
    read_hierarchy,
    read_plan_shape,
    read_step_specs,
    to_plan_steps,
)
from planner_core.llm.schemas import FlatPlan, HierarchicalPlan, PlannerMeta


def _deps_sound(steps):
    return all(d < i for i, s in enumerate(steps) for d in s.depends_on)


def test_normalize_tool():
    assert normalize_tool("Playwright") == "playwright"
    assert normalize_tool("search|playwright") == "search"
    assert normalize_tool("none") == "none"
    assert normalize_tool("selenium") == "playwright"
    assert normalize_tool(None) == "playwright"


def test_read_step_spec_defaults_and_junk():
    specs = read_step_specs([{"title": "  "}, "Open the site", 42, {"title": "x", "phase": "dance", "priority": "hi"}])
    assert [s.title for s in specs] == [DEFAULT_STEP_TITLE, "Open the site", DEFAULT_STEP_TITLE, "x"]
    assert specs[3].phase is None
    assert specs[3].priority is None
    assert read_step_specs("not a list") == []


def test_same_flat_spec_twice_gives_equal_plans_with_distinct_ids():
    raw = [
        {"title": "Open site", "expectedObservation": "Home page"},
        {"title": "Search", "dependsOn": [0], "successCriteria": "Results shown"},
    ]
    first = build_plan_steps(read_step_specs(raw))
    second = build_plan_steps(read_step_specs(raw))
    assert [(s.title, s.tool, s.success_criteria, s.depends_on) for s in first] == [
        (s.title, s.tool, s.success_criteria, s.depends_on) for s in second
    ]
    assert not {s.id for s in first} & {s.id for s in second}


def test_dependencies_resolve_by_index_title_and_step_label():
    steps = build_plan_steps(
        read_step_specs(
            [
                {"title": "Open site", "id": "open"},
                {"title": "Search", "dependsOn": ["open site"]},
                {"title": "Open result", "dependsOn": ["step 1", 0]},
                {"title": "Capture", "dependsOn": [3, 7, "open", "nowhere"]},
            ]
        )
    )
    assert [s.depends_on for s in steps] == [[], [0], [0, 1], [0]]
    assert _deps_sound(steps)


def test_every_step_is_pending_with_bounded_attempts():
    steps = build_plan_steps(read_step_specs(["a", "b"]), max_attempts=9)
    assert all(s.status == "pending" and s.attempts == 0 and s.max_attempts == 5 for s in steps)
    steps = build_plan_steps(read_step_specs(["a"]), max_attempts=0)
    assert steps[0].max_attempts == 1


def test_normalize_steps_caps_length():
    steps = normalize_steps([{"title": f"s{i}"} for i in range(10)], max_steps=3)
    assert [s.title for s in steps] == ["s0", "s1", "s2"]


def test_safety_and_verification_steps_wrap_the_plan():
    meta = normalize_meta(
        {
            "critique": {"safetyChecks": ["No purchases"], "risks": ["captcha"]},
            "safetyChecks": ["No purchases", "Stay on domain"],
            "successSignals": ["Price visible"],
        }
    )
    specs = read_step_specs([{"title": "Open"}, {"title": "Read", "dependsOn": [0]}])
    steps = build_plan_steps(specs, meta, include_safety=True)
    assert [s.title for s in steps] == [
        "Safety check: No purchases",
        "Safety check: Stay on domain",
        "Open",
        "Read",
        "Verify: Price visible",
    ]
    assert steps[0].tool == "none" and steps[0].phase == "observe"
    assert steps[-1].phase == "verify"
    # "Read" depended on "Open" (0); both shift past the two safety steps
    assert steps[3].depends_on == [2]


def test_safety_steps_never_stand_alone():
    meta = PlannerMeta(safety_checks=["Be careful"], success_signals=["Done"])
    assert to_plan_steps(FlatPlan(steps=[]), meta, include_safety=True) == []
    assert to_plan_steps(None, meta, include_safety=True) == []


def test_flatten_hierarchy_rewrites_local_indices_and_cross_subgoal_refs():
    hierarchy = read_hierarchy(
        [
            {
                "title": "Find product",
                "priority": 2,
                "subgoals": [
                    {"title": "Reach site", "steps": [{"title": "Open site"}, {"title": "Accept cookies", "dependsOn": [0]}]},
                    {
                        "title": "Search",
                        "dependsOn": ["Reach site"],
                        "steps": [{"title": "Type query"}, {"title": "Submit", "dependsOn": [0], "priority": 5}],
                    },
                ],
            },
            {
                "title": "Report",
                "dependsOn": [0],
                "subgoals": [{"steps": [{"title": "Write answer", "dependsOn": ["submit"]}]}],
            },
        ]
    )
    flat = flatten_hierarchy(hierarchy)
    assert [s.title for s in flat] == ["Open site", "Accept cookies", "Type query", "Submit", "Write answer"]
    assert [s.depends_on for s in flat] == [[], [0], [1], [2], [3]]
    assert [s.priority for s in flat] == [2, 2, 2, 5, None]
    assert flat[0].goal_id == hierarchy.goals[0].id
    assert flat[4].subgoal_id == hierarchy.goals[1].subgoals[0].id


def test_hierarchy_defaults():
    hierarchy = read_hierarchy([{"subgoals": [{}]}, "junk"])
    assert hierarchy.goals[0].title == DEFAULT_GOAL_TITLE
    assert hierarchy.goals[0].subgoals[0].title == DEFAULT_SUBGOAL_TITLE
    assert hierarchy.goals[1].subgoals == []
    assert read_hierarchy([]) is None


def test_plan_shape_prefers_a_hierarchy_with_steps():
    raw = {"goals": [{"subgoals": [{"steps": ["a"]}]}], "steps": ["x", "y"]}
    assert isinstance(read_plan_shape(raw), HierarchicalPlan)
    raw = {"goals": [{"subgoals": [{}]}], "steps": ["x", "y"]}
    shape = read_plan_shape(raw)
    assert isinstance(shape, FlatPlan)
    assert [s.title for s in shape.steps] == ["x", "y"]
    assert read_plan_shape({}) is None


def test_branch_steps_from_alternatives():
    meta = normalize_meta(
        {
            "alternatives": [
                {"title": "Use search", "steps": [{"title": "Search site"}, {"title": "Open hit", "dependsOn": [0]}]},
                {"title": "Go back", "rationale": "Page broke"},
                {"rationale": "no title, no steps"},
            ]
        }
    )
    assert len(meta.alternatives) == 2
    steps = build_branch_steps_from_alternatives(meta.alternatives, max_attempts=2, max_steps=4)
    assert [s.title for s in steps] == ["Search site", "Open hit", "Go back"]
    assert all(s.phase == "recover" for s in steps)
    assert steps[1].depends_on == [0]
    assert steps[2].depends_on == []
    assert len(build_branch_steps_from_alternatives(meta.alternatives, 2, 1)) == 1


def test_normalize_meta_merges_critique_lists():
    meta = normalize_meta(
        {
            "selfCritique": {"questions": ["Is login needed?"]},
            "questions": ["Is login needed?", "Which region?"],
            "taskType": "extract_info",
            "summary": "  Find a price. ",
        }
    )
    assert meta.questions == ["Is login needed?", "Which region?"]
    assert meta.task_type == "extract_info"
    assert meta.summary == "Find a price."
    assert normalize_meta({"taskType": "other"}).task_type is None
    assert normalize_meta("junk") == PlannerMeta()


def test_normalize_decision():
    steps = build_plan_steps(read_step_specs(["a"]))
    decision = normalize_decision({"action": "tool", "toolName": "search"}, steps, "x", [])
    assert decision.action == "tool" and decision.tool_name == "search"
    decision = normalize_decision({"action": "fly"}, steps, "x", [])
    assert decision.action == "tool" and decision.tool_name == "playwright"
    assert normalize_decision(None, [], "tell me a joke", ["known fact"]).action == "respond"
    assert normalize_decision(None, [], "tell me a joke", []).action == "wait_human"
