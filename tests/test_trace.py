import pytest

from borrowlens.trace import (
    Frame,
    Heap,
    Local,
    Result,
    Stack,
    Step,
    Trace,
    UndefinedBehavior,
    group_steps,
)

DUMMY_RANGE = {"start": 0, "end": 0, "filename": "dummy.rs"}


def mk_step(name, location):
    return Step(
        stack=Stack([Frame(name=name, body_span=DUMMY_RANGE, locals=[], location=location)]),
        heap=Heap([]),
    )


def named_locs(trace):
    return [(s.stack.frames[0].name, s.stack.frames[0].location) for s in trace.steps]


def test_group_steps():
    trace = Trace(steps=[mk_step("S0", 0), mk_step("S1", 1), mk_step("S2", 2)], result=Result.ok())
    grouped = group_steps(trace, lambda n: n // 2 * 2)
    assert named_locs(grouped) == [("S1", 0), ("S2", 2)]


def test_group_steps_drops_unmappable():
    trace = Trace(steps=[mk_step("A", 1), mk_step("B", 2), mk_step("C", 3)])
    grouped = group_steps(trace, lambda n: None if n == 2 else n)
    assert named_locs(grouped) == [("A", 1), ("C", 3)]


def test_group_steps_only_merges_consecutive():
    trace = Trace(steps=[mk_step("A", "x"), mk_step("B", "y"), mk_step("C", "x")])
    grouped = group_steps(trace, lambda loc: loc)
    assert named_locs(grouped) == [("A", "x"), ("B", "y"), ("C", "x")]


def test_group_steps_keeps_result():
    error = Result.failed(UndefinedBehavior.use_after_free(3))
    trace = Trace(steps=[mk_step("A", 1)], result=error)
    assert group_steps(trace, lambda n: n).result == error


def test_group_steps_drops_step_when_outer_frame_unmappable():
    step = Step(
        stack=Stack(
            [
                Frame(name="outer", body_span=DUMMY_RANGE, location=-1),
                Frame(name="inner", body_span=DUMMY_RANGE, location=5),
            ]
        )
    )
    trace = Trace(steps=[step, mk_step("B", 5)])
    grouped = group_steps(trace, lambda n: n if n >= 0 else None)
    assert named_locs(grouped) == [("B", 5)]


def test_group_steps_rejects_empty_stack():
    trace = Trace(steps=[Step(stack=Stack([]))])
    with pytest.raises(ValueError):
        group_steps(trace, lambda n: n)


def test_result_json():
    assert Result.ok().to_json() == {"type": "Success"}
    assert Result.failed(UndefinedBehavior.use_after_free(2)).to_json() == {
        "type": "Error",
        "value": {"type": "PointerUseAfterFree", "value": {"alloc_id": 2}},
    }
    assert Result.failed(UndefinedBehavior.other("boom")).to_json() == {
        "type": "Error",
        "value": {"type": "Other", "value": "boom"},
    }


def test_result_succeeded():
    assert Result.ok().succeeded is True
    assert Result.failed(UndefinedBehavior.other("x")).succeeded is False


def test_trace_json():
    local = Local(name="x", value={"type": "Int", "value": 1}, moved_paths=[[{"type": "Field", "value": 0}]])
    step = Step(
        stack=Stack([Frame(name="main", body_span=DUMMY_RANGE, location=[1, 2], locals=[local])]),
        heap=Heap([{"type": "Uint", "value": 4}]),
    )
    assert Trace(steps=[step]).to_json() == {
        "steps": [
            {
                "stack": {
                    "frames": [
                        {
                            "name": "main",
                            "body_span": DUMMY_RANGE,
                            "location": [1, 2],
                            "locals": [
                                {
                                    "name": "x",
                                    "value": {"type": "Int", "value": 1},
                                    "moved_paths": [[{"type": "Field", "value": 0}]],
                                }
                            ],
                        }
                    ]
                },
                "heap": {"locations": [{"type": "Uint", "value": 4}]},
            }
        ],
        "result": {"type": "Success"},
    }


def test_empty_trace_groups_to_empty():
    grouped = group_steps(Trace(), lambda n: n)
    assert grouped.steps == []
    assert grouped.result.succeeded is True