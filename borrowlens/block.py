"""Parser for annotated code blocks within Markdown."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field

from .annotations import Annotations, parse_annotations

_TAG = "```aquascope"
_FENCE = "```"
_SYMBOL = re.compile(r"[^,=\n+]*")


@dataclass
class CodeBlock:
    """A fenced code block with its operations, configuration and annotations."""

    operations: list[str]
    config: list[tuple[str, str]]
    code: str
    annotations: Annotations = field(default_factory=Annotations)

    def cache_key(self) -> str:
        """Stable digest of everything that affects a computed result.

        Annotations are left out: they do not change the result.
        """
        payload = json.dumps(
            [self.operations, [list(pair) for pair in self.config], self.code],
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _symbol(content: str, pos: int) -> tuple[str, int]:
    match = _SYMBOL.match(content, pos)
    return match.group(), match.end()


def parse_block(content: str, start: int = 0) -> tuple[CodeBlock, int] | None:
    """Parse a block beginning exactly at ``start``.

    Returns the block and the index just past its closing fence, or None.
    """
    if not content.startswith(_TAG, start):
        return None
    pos = start + len(_TAG)
    if not content.startswith(",", pos):
        return None

    operation, pos = _symbol(content, pos + 1)
    operations = [operation]
    while content.startswith("+", pos):
        operation, pos = _symbol(content, pos + 1)
        operations.append(operation)

    config: list[tuple[str, str]] = []
    while content.startswith(",", pos):
        key, after = _symbol(content, pos + 1)
        if content.startswith("=", after):
            value, pos = _symbol(content, after + 1)
        else:
            value, pos = "true", after
        config.append((key, value))

    close = content.find(_FENCE, pos)
    if close < 0:
        return None

    code, annotations = parse_annotations(content[pos:close].strip())
    block = CodeBlock(
        operations=operations, config=config, code=code, annotations=annotations
    )
    return block, close + len(_FENCE)


def parse_blocks(content: str) -> list[tuple[range, CodeBlock]]:
    """Find every block in ``content`` with the character range it spans."""
    found: list[tuple[range, CodeBlock]] = []
    pos = 0
    while (start := content.find(_TAG, pos)) >= 0:
        parsed = parse_block(content, start)
        if parsed is None:
            pos = start + 1
            continue
        block, end = parsed
        found.append((range(start, end), block))
        pos = end
    return found