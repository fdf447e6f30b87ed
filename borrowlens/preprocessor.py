"""Runs the analysis tool on annotated code blocks and renders embeddable HTML."""

from __future__ import annotations

import html
import json
import os
import subprocess
import tempfile
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Protocol

from .block import CodeBlock, parse_blocks
from .cache import CACHE_PATH, Cache
from .permissions import Replacement, parse_perms
from .workspace import miri_sysroot, run_and_get_output, rustc

AQUASCOPE_TIMEOUT = 10.0


class AquascopeFailure(RuntimeError):
    """Raised when the analysis tool cannot produce a result for a block."""


class Runner(Protocol):
    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: float | None,
    ) -> subprocess.CompletedProcess[bytes]: ...


def run_command(
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    timeout: float | None,
) -> subprocess.CompletedProcess[bytes]:
    """Run a command with ``env`` laid over the current environment."""
    return subprocess.run(
        list(args),
        cwd=cwd,
        env={**os.environ, **env},
        capture_output=True,
        timeout=timeout,
    )


def response_is_error(response: Any) -> bool:
    """Whether a tool response (an object or a list of objects) holds an ``Err``."""
    if isinstance(response, dict):
        return "Err" in response
    if isinstance(response, list):
        return any(isinstance(item, dict) and "Err" in item for item in response)
    return False


def _data_attr(name: str, value: Any) -> tuple[str, str]:
    return f"data-{name}", json.dumps(value)


def render_embed(block: CodeBlock, responses: Any) -> str:
    """Render the HTML element that the frontend turns into an editor."""
    attrs = [
        ("class", "aquascope-embed"),
        _data_attr("code", block.code),
        _data_attr("annotations", block.annotations.to_json()),
        _data_attr("operations", block.operations),
        _data_attr("responses", responses),
        _data_attr("config", dict(block.config)),
        _data_attr("no-interact", True),
    ]
    rendered = " ".join(
        f'{name}="{html.escape(value, quote=True)}"' for name, value in attrs
    )
    return f"<div {rendered}></div>"


class Preprocessor:
    """Turns annotated blocks and permission markers in Markdown into HTML."""

    def __init__(
        self,
        cache: Cache[str],
        miri_sysroot: str | os.PathLike,
        target_libdir: str | os.PathLike,
        runner: Runner = run_command,
    ) -> None:
        self.cache = cache
        self.miri_sysroot = Path(miri_sysroot)
        self.target_libdir = Path(target_libdir)
        self._runner = runner
        self._lock = threading.Lock()

    def _env(self) -> dict[str, str]:
        sysroot = str(self.miri_sysroot)
        libdir = str(self.target_libdir)
        return {
            "SYSROOT": sysroot,
            "MIRI_SYSROOT": sysroot,
            "DYLD_LIBRARY_PATH": libdir,
            "LD_LIBRARY_PATH": libdir,
            "RUST_BACKTRACE": "1",
        }

    def run_aquascope(self, block: CodeBlock) -> str:
        """Run the tool for each operation of ``block``; return the responses as JSON."""
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            created = self._runner(
                ["cargo", "new", "--bin", "example"], cwd=root, env={}, timeout=None
            )
            if created.returncode != 0:
                raise AquascopeFailure("Cargo failed")

            project = root / "example"
            (project / "src" / "main.rs").write_text(block.code, encoding="utf-8")

            should_fail = any(key == "shouldFail" for key, _ in block.config)
            show_flows = any(key == "showFlows" for key, _ in block.config)

            responses: dict[str, Any] = {}
            for operation in block.operations:
                args = ["cargo", "aquascope"]
                if should_fail:
                    args.append("--should-fail")
                args.append(operation)
                if show_flows:
                    args.append("--show-flows")

                try:
                    output = self._runner(
                        args, cwd=project, env=self._env(), timeout=AQUASCOPE_TIMEOUT
                    )
                except subprocess.TimeoutExpired as exc:
                    raise AquascopeFailure(
                        f"Aquascope timed out on program:\n{block.code}"
                    ) from exc

                if output.returncode != 0:
                    error = output.stderr.decode("utf-8")
                    raise AquascopeFailure(
                        f"Aquascope failed for program:\n{block.code}\nwith error:\n{error}"
                    )

                response = json.loads(output.stdout.decode("utf-8"))
                if response_is_error(response):
                    error = output.stderr.decode("utf-8")
                    raise AquascopeFailure(
                        f"Aquascope failed for program:\n{block.code}\nwith error:\n{error}"
                    )
                if isinstance(response, dict) and response.get("type") == "BuildError":
                    raise AquascopeFailure(f"Aquascope failed for program:\n{block.code}")

                responses[operation] = response

        return json.dumps(responses, separators=(",", ":"))

    def process_code(self, block: CodeBlock) -> str:
        """Return the HTML for ``block``, computing and caching the tool output if needed."""
        with self._lock:
            response = self.cache.get(block)
        if response is None:
            response = self.run_aquascope(block)
            with self._lock:
                self.cache.set(block, response)
        return render_embed(block, json.loads(response.rstrip()))

    def replacements(self, content: str) -> list[Replacement]:
        """All (range, html) replacements for a chapter: blocks first, then permissions."""
        blocks = parse_blocks(content)
        with ThreadPoolExecutor() as pool:
            rendered = list(
                pool.map(lambda item: (item[0], self.process_code(item[1])), blocks)
            )
        return rendered + list(parse_perms(content))

    def save_cache(self) -> None:
        with self._lock:
            self.cache.save()


def create_preprocessor(cache_path: str | os.PathLike = CACHE_PATH) -> Preprocessor:
    """Build a preprocessor using the locally installed toolchain."""
    sysroot = miri_sysroot()
    libdir = run_and_get_output([str(rustc()), "--print", "target-libdir"])
    return Preprocessor(Cache(cache_path), sysroot, Path(libdir))