import asyncio

import pytest
from conftest import depends, make_field

from formbuilder.database import QueryResult
from formbuilder.runtime import FieldState, FormRuntime


def yes_no_form():
    return [
        make_field("f1", "radio", 0, options=["yes", "no"]),
        make_field("f2", "text", 1, required=True, conditional_logic=depends("f1", "yes")),
    ]


def test_conditional_required_field_flow():
    """Answering "no" hides the follow-up, answering "yes" makes it required."""
    runtime = FormRuntime(yes_no_form())

    runtime.set_value("f1", "no")
    assert not runtime.is_visible("f2")
    assert runtime.values["f2"] == ""
    assert runtime.can_submit()
    assert runtime.payload() == {"f1": "no"}

    runtime.set_value("f1", "yes")
    assert runtime.is_visible("f2")
    assert runtime.check() == {"f2": "required"}
    assert not runtime.can_submit()

    runtime.set_value("f2", "hello")
    assert runtime.can_submit()
    assert runtime.payload() == {"f1": "yes", "f2": "hello"}


def test_field_states():
    runtime = FormRuntime(yes_no_form())
    assert runtime.state("f2") == FieldState.HIDDEN

    runtime.set_value("f1", "yes")
    assert runtime.state("f1") == FieldState.VISIBLE_VALID
    assert runtime.state("f2") == FieldState.VISIBLE_UNTOUCHED

    runtime.blur("f2")
    assert runtime.state("f2") == FieldState.VISIBLE_INVALID

    runtime.set_value("f2", "hi")
    assert runtime.state("f2") == FieldState.VISIBLE_VALID


def test_hiding_a_field_clears_its_value_and_error():
    runtime = FormRuntime(yes_no_form())
    runtime.set_value("f1", "yes")
    runtime.blur("f2")
    assert "f2" in runtime.errors

    runtime.set_value("f1", "no")
    assert runtime.values["f2"] == ""
    assert "f2" not in runtime.errors
    assert runtime.state("f2") == FieldState.HIDDEN


def test_unknown_field_id_raises():
    runtime = FormRuntime(yes_no_form())
    with pytest.raises(KeyError):
        runtime.set_value("nope", "x")


def test_defaults_are_seeded_and_hidden_ones_cleared():
    fields = [
        make_field("color", "select", 0, options=["red", "blue"], default_value="red"),
        make_field("shade", "text", 1, default_value="dark", conditional_logic=depends("color", "blue")),
        make_field("tags", "checkbox", 2, options=["a", "b"], default_value="a"),
    ]
    runtime = FormRuntime(fields)
    assert runtime.values == {"color": "red", "shade": "", "tags": ["a"]}


def test_load_settles_a_posted_value_set():
    runtime = FormRuntime(yes_no_form())
    runtime.load({"f1": "no", "f2": "sneaky", "unknown": 1})
    assert runtime.values == {"f1": "no", "f2": ""}
    assert runtime.check() == {}


def test_evaluator_and_validator_are_injected():
    def always_visible(fields, values):
        return {f.id: True for f in fields}

    runtime = FormRuntime(yes_no_form(), evaluator=always_visible)
    runtime.set_value("f1", "no")
    assert runtime.is_visible("f2")
    assert runtime.check() == {"f2": "required"}

    # values are only cleared when the injected evaluator hides a field
    runtime.set_value("f1", "yes")
    runtime.set_value("f2", "typed")
    runtime.set_value("f1", "no")
    assert runtime.is_visible("f2")
    assert runtime.values["f2"] == "typed"
    assert runtime.load({"f1": "yes"}).cleared == []


def test_submit_sends_visible_values_only():
    sent = []

    async def persist(payload):
        sent.append(payload)
        return QueryResult(data={"id": "r1"})

    runtime = FormRuntime(yes_no_form())
    runtime.set_value("f1", "no")
    outcome = asyncio.run(runtime.submit(persist))
    assert outcome.ok
    assert outcome.result.data == {"id": "r1"}
    assert sent == [{"f1": "no"}]


def test_submit_blocked_by_errors_does_not_persist():
    async def persist(payload):
        raise AssertionError("must not be called")

    runtime = FormRuntime(yes_no_form())
    runtime.set_value("f1", "yes")
    outcome = asyncio.run(runtime.submit(persist))
    assert not outcome.ok
    assert outcome.errors == {"f2": "required"}


def test_submit_failure_becomes_a_notification():
    async def persist(payload):
        return QueryResult(error="insert failed")

    runtime = FormRuntime(yes_no_form())
    runtime.set_value("f1", "no")
    outcome = asyncio.run(runtime.submit(persist))
    assert not outcome.ok
    assert outcome.notification == "insert failed"
    assert outcome.errors == {}


def test_submit_result_discarded_after_close():
    async def scenario():
        release = asyncio.Event()

        async def persist(payload):
            await release.wait()
            return QueryResult(data={"id": "late"})

        runtime = FormRuntime(yes_no_form())
        runtime.set_value("f1", "no")
        pending = asyncio.create_task(runtime.submit(persist))
        await asyncio.sleep(0)
        runtime.close()
        release.set()
        return await pending

    assert asyncio.run(scenario()) is None


def test_instances_do_not_share_state():
    fields = yes_no_form()
    first = FormRuntime(fields)
    second = FormRuntime(fields)
    first.set_value("f1", "yes")
    assert second.values["f1"] == ""
    assert not second.is_visible("f2")
