"""Renders inline permission markers found outside code blocks."""

from __future__ import annotations

import re
from collections.abc import Iterator

VALID_PERMISSIONS = ("read", "write", "own", "flow")

_PERM_RE = re.compile(r"@Perm(\[[^\]]*\])?\{([^}]*)\}")

Replacement = tuple[range, str]


class InvalidPermission(ValueError):
    """Raised for an unknown permission or marker option."""


def _render(option: str | None, perm: str) -> str:
    letter = perm[0].upper()
    perm_html = f'<span class="perm {perm}">{letter}</span>'
    match option:
        case None:
            return perm_html
        case "[gained]":
            return f'<span><span class="perm-diff-add">+</span>{perm_html}</span>'
        case "[lost]":
            return (
                '<span class="perm-diff-sub-container">'
                f'<div class="perm-diff-sub"></div>{perm_html}</span>'
            )
        case "[missing]":
            return f'<span class="perm missing {perm}">{letter}</span>'
        case _:
            raise InvalidPermission(f"Unsupported permission option: {option}")


def parse_perms(content: str) -> Iterator[Replacement]:
    """Yield (range, html) for every ``@Perm{...}`` marker in ``content``."""
    for match in _PERM_RE.finditer(content):
        perm = match.group(2)
        if perm not in VALID_PERMISSIONS:
            raise InvalidPermission(f"Invalid permission: {perm}")
        yield range(match.start(), match.end()), _render(match.group(1), perm)