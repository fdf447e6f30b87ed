"""Command-line entry point for the book preprocessor."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from .permissions import Replacement
from .preprocessor import create_preprocessor


class _Replacer(Protocol):
    def replacements(self, content: str) -> list[Replacement]: ...


def apply_replacements(content: str, replacements: Iterable[Replacement]) -> str:
    """Substitute each (range, text) into ``content``; ranges must not overlap."""
    ordered = sorted(replacements, key=lambda item: (item[0].start, item[0].stop))
    pieces: list[str] = []
    pos = 0
    for span, text in ordered:
        if span.start < pos:
            raise ValueError(f"Overlapping replacement at offset {span.start}")
        pieces += [content[pos:span.start], text]
        pos = span.stop
    pieces.append(content[pos:])
    return "".join(pieces)


def _chapters(items: Iterable[Any]) -> Iterator[dict[str, Any]]:
    for item in items:
        if isinstance(item, dict) and "Chapter" in item:
            chapter = item["Chapter"]
            yield chapter
            yield from _chapters(chapter.get("sub_items", []))


def preprocess_book(book: dict[str, Any], preprocessor: _Replacer) -> dict[str, Any]:
    """Rewrite the content of every chapter in a book document, in place."""
    items = book.get("items", book.get("sections", []))
    for chapter in _chapters(items):
        content = chapter.get("content", "")
        chapter["content"] = apply_replacements(
            content, preprocessor.replacements(content)
        )
    return book


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mdbook-borrowlens",
        description="Interactive code visualizations for your book",
    )
    commands = parser.add_subparsers(dest="command")
    supports = commands.add_parser("supports", help="check renderer support")
    supports.add_argument("renderer")
    args = parser.parse_args(argv)

    if args.command == "supports":
        return 0

    _context, book = json.load(sys.stdin)
    preprocessor = create_preprocessor()
    book = preprocess_book(book, preprocessor)
    json.dump(book, sys.stdout)
    sys.stdout.flush()
    preprocessor.save_cache()
    return 0


if __name__ == "__main__":
    sys.exit(main())