"""Parser for annotations within a code block body."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any

_MARKERS = (
    ("`[", "]`", "interp"),
    ("`(", ")`", "stepper"),
    ("`{", "}`", "boundaries"),
)

_PATTERN = re.compile(
    "|".join(
        f"{re.escape(open_)}(?P<{name}>[^{re.escape(close[0])}]*){re.escape(close)}"
        for open_, close, name in _MARKERS
    )
)


class MatcherKind(enum.Enum):
    LITERAL = "Literal"
    REGEX = "Regex"


@dataclass(frozen=True)
class PathMatcher:
    """A way of selecting paths to focus: a literal string or a regex."""

    kind: MatcherKind
    value: str

    @classmethod
    def literal(cls, value: str) -> PathMatcher:
        return cls(MatcherKind.LITERAL, value)

    @classmethod
    def regex(cls, value: str) -> PathMatcher:
        return cls(MatcherKind.REGEX, value)


@dataclass
class StepperAnnotations:
    focused_lines: list[int] = field(default_factory=list)
    focused_paths: dict[int, list[PathMatcher]] = field(default_factory=dict)


@dataclass
class BoundariesAnnotations:
    focused_lines: list[int] = field(default_factory=list)


@dataclass
class InterpAnnotations:
    state_locations: list[int] = field(default_factory=list)


@dataclass
class Annotations:
    """Everything collected from the markers in a code block.

    Line positions are 1-based; state locations are UTF-8 byte offsets
    into the cleaned code.
    """

    hidden_lines: list[int] = field(default_factory=list)
    interp: InterpAnnotations = field(default_factory=InterpAnnotations)
    stepper: StepperAnnotations = field(default_factory=StepperAnnotations)
    boundaries: BoundariesAnnotations = field(default_factory=BoundariesAnnotations)

    def to_json(self) -> dict[str, Any]:
        """Return the JSON-ready form consumed by the frontend."""
        return {
            "hidden_lines": list(self.hidden_lines),
            "interp": {"state_locations": list(self.interp.state_locations)},
            "stepper": {
                "focused_lines": list(self.stepper.focused_lines),
                "focused_paths": {
                    str(line): [
                        {"type": m.kind.value, "value": m.value} for m in matchers
                    ]
                    for line, matchers in self.stepper.focused_paths.items()
                },
            },
            "boundaries": {"focused_lines": list(self.boundaries.focused_lines)},
        }


def _lines(code: str) -> list[str]:
    lines = code.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _parse_config(interior: str) -> dict[str, str]:
    config: dict[str, str] = {}
    for item in interior.split(","):
        if not item:
            continue
        key, _, value = item.partition(":")
        config[key] = value
    return config


def parse_annotations(code: str) -> tuple[str, Annotations]:
    """Strip annotation markers from ``code``, returning the cleaned code and what they said."""
    annots = Annotations()
    idx = 0
    output_lines: list[str] = []

    for line_pos, line in enumerate(_lines(code), start=1):
        fragments: list[str] = []
        if line.startswith("#"):
            annots.hidden_lines.append(line_pos)
            suffix = line[1:]
            fragments.append(suffix)
            idx += _byte_len(suffix)
        elif line.startswith("\\#"):
            suffix = line[2:]
            fragments += ["#", suffix]
            idx += 1 + _byte_len(suffix)
        else:
            while (match := _PATTERN.search(line)) is not None:
                prefix = line[: match.start()]
                fragments.append(prefix)
                idx += _byte_len(prefix)

                kind = match.lastgroup
                config = _parse_config(match.group(kind))
                if kind == "interp":
                    annots.interp.state_locations.append(idx)
                elif kind == "stepper":
                    if "focus" in config:
                        annots.stepper.focused_lines.append(line_pos)
                    matchers = []
                    if "paths" in config:
                        matchers.append(PathMatcher.literal(config["paths"]))
                    if "rxpaths" in config:
                        matchers.append(PathMatcher.regex(config["rxpaths"]))
                    if matchers:
                        annots.stepper.focused_paths.setdefault(line_pos, []).extend(
                            matchers
                        )
                else:
                    annots.boundaries.focused_lines.append(line_pos)

                line = line[match.end():]
            fragments.append(line)
            idx += _byte_len(line)

        idx += 1  # the newline
        output_lines.append("".join(fragments))

    return "\n".join(output_lines), annots