"""Execution traces of a program and grouping of their steps by location."""

from __future__ import annotations

import enum
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

L = TypeVar("L")
M = TypeVar("M")


def _to_json(value: Any) -> Any:
    """Convert nested values to their JSON-ready form."""
    if hasattr(value, "to_json"):
        return value.to_json()
    if isinstance(value, dict):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


@dataclass
class Local:
    """A source-level variable in a frame, with the paths moved out of it."""

    name: str
    value: Any
    moved_paths: list[list[Any]] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": _to_json(self.value),
            "moved_paths": _to_json(self.moved_paths),
        }


@dataclass
class Frame(Generic[L]):
    """One stack frame: the function's name, its source span, where it is and its locals."""

    name: str
    body_span: Any
    location: L
    locals: list[Local] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "body_span": _to_json(self.body_span),
            "location": _to_json(self.location),
            "locals": [local.to_json() for local in self.locals],
        }


@dataclass
class Stack(Generic[L]):
    frames: list[Frame[L]] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {"frames": [frame.to_json() for frame in self.frames]}


@dataclass
class Heap:
    locations: list[Any] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {"locations": _to_json(self.locations)}


@dataclass
class Step(Generic[L]):
    """A snapshot of the stack and heap at one point of execution."""

    stack: Stack[L]
    heap: Heap = field(default_factory=Heap)

    def to_json(self) -> dict[str, Any]:
        return {"stack": self.stack.to_json(), "heap": self.heap.to_json()}


class UBKind(enum.Enum):
    POINTER_USE_AFTER_FREE = "PointerUseAfterFree"
    OTHER = "Other"


@dataclass(frozen=True)
class UndefinedBehavior:
    """Undefined behaviour that stopped execution."""

    kind: UBKind
    alloc_id: int | None = None
    message: str | None = None

    @classmethod
    def use_after_free(cls, alloc_id: int) -> UndefinedBehavior:
        return cls(UBKind.POINTER_USE_AFTER_FREE, alloc_id=alloc_id)

    @classmethod
    def other(cls, message: str) -> UndefinedBehavior:
        return cls(UBKind.OTHER, message=message)

    def to_json(self) -> dict[str, Any]:
        if self.kind is UBKind.POINTER_USE_AFTER_FREE:
            return {"type": self.kind.value, "value": {"alloc_id": self.alloc_id}}
        return {"type": self.kind.value, "value": self.message}


@dataclass(frozen=True)
class Result:
    """How execution ended: successfully, or with undefined behaviour."""

    error: UndefinedBehavior | None = None

    @classmethod
    def ok(cls) -> Result:
        return cls()

    @classmethod
    def failed(cls, error: UndefinedBehavior) -> Result:
        return cls(error)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_json(self) -> dict[str, Any]:
        if self.error is None:
            return {"type": "Success"}
        return {"type": "Error", "value": self.error.to_json()}


@dataclass
class Trace(Generic[L]):
    """The steps of an execution and how it ended."""

    steps: list[Step[L]] = field(default_factory=list)
    result: Result = field(default_factory=Result)

    def to_json(self) -> dict[str, Any]:
        return {
            "steps": [step.to_json() for step in self.steps],
            "result": self.result.to_json(),
        }


def _abstract_step(
    step: Step[L], abstract_loc: Callable[[L], M | None]
) -> Step[M] | None:
    frames: list[Frame[M]] = []
    for frame in step.stack.frames:
        location = abstract_loc(frame.location)
        if location is None:
            return None
        frames.append(replace(frame, location=location))
    return Step(stack=Stack(frames), heap=step.heap)


def _current_location(step: Step[M]) -> M:
    if not step.stack.frames:
        raise ValueError("Step has no frames")
    return step.stack.frames[-1].location


def group_steps(trace: Trace[L], abstract_loc: Callable[[L], M | None]) -> Trace[M]:
    """Map every frame location through ``abstract_loc`` and merge runs of steps.

    Steps with any frame whose location maps to None are dropped. Consecutive
    steps whose innermost frame maps to the same location are grouped, and
    only the last step of each group is kept.
    """
    abstracted = (
        mapped
        for step in trace.steps
        if (mapped := _abstract_step(step, abstract_loc)) is not None
    )
    steps = [
        list(group)[-1]
        for _, group in itertools.groupby(abstracted, key=_current_location)
    ]
    return Trace(steps=steps, result=trace.result)