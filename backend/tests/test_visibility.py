from conftest import depends, make_field

from formbuilder.visibility import (
    cascade_reset,
    compute_visibility,
    dependency_candidates,
    dependency_problems,
    evaluate_condition,
    settle,
)


def chain():
    """a -> b -> c, each shown when its parent equals "x"."""
    return [
        make_field("a", position=0),
        make_field("b", position=1, conditional_logic=depends("a", "x")),
        make_field("c", position=2, conditional_logic=depends("b", "x")),
    ]


def test_unconditional_fields_are_visible():
    fields = [make_field("a"), make_field("b", position=1)]
    assert compute_visibility(fields, {}) == {"a": True, "b": True}


def test_unset_parent_hides_dependent_whatever_the_rule():
    """A dependency on a field with no value never shows the dependent, even for hide rules."""
    for condition in ("equals", "not_equals", "is_empty", "is_not_empty"):
        for action in ("show", "hide"):
            fields = [
                make_field("a"),
                make_field("b", position=1, conditional_logic=depends("a", "x", condition, action)),
            ]
            assert compute_visibility(fields, {})["b"] is False
            assert compute_visibility(fields, {"a": None})["b"] is False


def test_hidden_parent_hides_child_once_its_value_is_reset():
    fields = chain()
    result = settle(fields, {"a": "y", "b": "x"})
    assert result.visibility == {"a": True, "b": False, "c": False}


def test_dependents_of_a_cleared_parent_follow_its_empty_value():
    """Only the parent's value counts, so is_empty and hide rules on a cleared parent show the field."""
    fields = chain() + [
        make_field("d", position=3, conditional_logic=depends("b", condition="is_empty")),
        make_field("e", position=4, conditional_logic=depends("b", "x", action="hide")),
    ]
    visibility = compute_visibility(fields, {"a": "y", "b": ""})
    assert visibility == {"a": True, "b": False, "c": False, "d": True, "e": True}


def test_hide_action_inverts_condition():
    fields = [make_field("a"), make_field("b", position=1, conditional_logic=depends("a", "x", action="hide"))]
    assert compute_visibility(fields, {"a": "x"})["b"] is False
    assert compute_visibility(fields, {"a": "y"})["b"] is True


def test_conditions_are_case_insensitive():
    assert evaluate_condition("equals", "Yes", "yes")
    assert not evaluate_condition("not_equals", "YES", "yes")
    assert evaluate_condition("contains", "Hello World", "world")
    assert evaluate_condition("contains", ["Red", "Blue"], "blue")
    assert not evaluate_condition("contains", ["Reddish"], "red")
    assert evaluate_condition("not_contains", ["red"], "green")


def test_numeric_and_emptiness_conditions():
    assert evaluate_condition("greater_than", "10", 5)
    assert evaluate_condition("less_than", 2.5, "3")
    assert not evaluate_condition("greater_than", "", 0)
    assert not evaluate_condition("less_than", "abc", 10)
    assert evaluate_condition("is_empty", [], None)
    assert evaluate_condition("is_not_empty", "x", None)
    assert evaluate_condition("equals", True, "true")
    assert evaluate_condition("equals", 3.0, "3")


def test_unknown_condition_is_not_met():
    assert not evaluate_condition("matches_regex", "x", "x")


def test_self_and_missing_dependencies_are_not_met():
    fields = [
        make_field("a", conditional_logic=depends("a", "x")),
        make_field("b", position=1, conditional_logic=depends("ghost", "x")),
        make_field("c", position=2, conditional_logic=depends("ghost", "x", action="hide")),
    ]
    assert compute_visibility(fields, {"a": "x"}) == {"a": False, "b": False, "c": True}


def test_cycle_terminates():
    fields = [
        make_field("a", conditional_logic=depends("b", "x")),
        make_field("b", position=1, conditional_logic=depends("a", "x")),
    ]
    visibility = compute_visibility(fields, {"a": "x", "b": "x"})
    assert set(visibility) == {"a", "b"}

    result = cascade_reset(fields, {"a": "x", "b": "x"}, "a")
    assert set(result.visibility) == {"a", "b"}

    settled = settle(fields, {"a": "x", "b": "x"})
    assert set(settled.values) == {"a", "b"}


def test_cycle_members_are_not_met_whatever_the_field_order():
    cycle = [
        make_field("a", conditional_logic=depends("b", "x", action="hide")),
        make_field("b", position=1, conditional_logic=depends("a", "x")),
        make_field("c", position=2, conditional_logic=depends("a", "x")),
    ]
    values = {"a": "x", "b": "x"}
    expected = {"a": True, "b": False, "c": True}
    assert compute_visibility(cycle, values) == expected
    assert compute_visibility(list(reversed(cycle)), values) == expected


def test_cascade_and_settle_use_the_given_evaluator():
    def always_visible(fields, values):
        return {f.id: True for f in fields}

    fields = chain()
    values = {"a": "y", "b": "x", "c": "z"}
    assert cascade_reset(fields, values, "a", always_visible).values == values
    assert settle(fields, values, always_visible).cleared == []


def test_cascade_clears_whole_chain_in_one_pass():
    fields = chain()
    values = {"a": "x", "b": "x", "c": "kept"}
    assert compute_visibility(fields, values) == {"a": True, "b": True, "c": True}

    values["a"] = "y"
    result = cascade_reset(fields, values, "a")
    assert result.values == {"a": "y", "b": "", "c": ""}
    assert result.visibility == {"a": True, "b": False, "c": False}
    assert result.cleared == ["b", "c"]


def test_cascade_resets_to_type_appropriate_empty_values():
    fields = [
        make_field("a"),
        make_field("tags", "checkbox", 1, options=["x", "y"], conditional_logic=depends("a", "x")),
        make_field("agree", "switch", 2, conditional_logic=depends("a", "x")),
    ]
    result = cascade_reset(fields, {"a": "no", "tags": ["x"], "agree": True}, "a")
    assert result.values["tags"] == []
    assert result.values["agree"] is False


def test_cascade_does_not_report_fields_already_empty():
    fields = chain()
    result = cascade_reset(fields, {"a": "y", "b": "", "c": ""}, "a")
    assert result.cleared == []


def test_settle_clears_hidden_values_from_a_posted_set():
    fields = chain()
    result = settle(fields, {"a": "nope", "b": "x", "c": "z"})
    assert result.values == {"a": "nope", "b": "", "c": ""}
    assert set(result.cleared) == {"b", "c"}


def test_dependency_candidates_are_fields_above():
    fields = chain()
    assert [f.id for f in dependency_candidates(fields, "c")] == ["a", "b"]
    assert dependency_candidates(fields, "a") == []
    assert dependency_candidates(fields, "missing") == []


def test_dependency_problems_are_reported():
    fields = [
        make_field("a", conditional_logic=depends("b", "x")),
        make_field("b", position=1),
        make_field("c", position=2, conditional_logic=depends("c", "x")),
        make_field("d", position=3, conditional_logic=depends("ghost", "x")),
    ]
    problems = {p["field"]: p["problem"] for p in dependency_problems(fields)}
    assert problems == {"a": "not_above", "c": "self", "d": "missing"}


def test_none_dependency_means_unconditional():
    fields = [make_field("a"), make_field("b", position=1, conditional_logic=depends("none"))]
    assert compute_visibility(fields, {})["b"] is True
