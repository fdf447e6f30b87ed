"""Helpers for locating the Rust toolchain pieces the tooling relies on."""

from __future__ import annotations

import os
import subprocess
import tomllib
from collections.abc import Sequence
from pathlib import Path

TOOLCHAIN_FILE = "rust-toolchain.toml"


class CommandError(RuntimeError):
    """Raised when an external command exits unsuccessfully."""


def run_and_get_output(cmd: Sequence[str | os.PathLike]) -> str:
    """Run ``cmd`` and return its stdout with trailing whitespace removed."""
    completed = subprocess.run(list(cmd), capture_output=True)
    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8")
        raise CommandError(f"Command failed with stderr:\n{stderr}")
    return completed.stdout.decode("utf-8").rstrip()


def toolchain(text: str | None = None) -> str:
    """Return the toolchain channel named in a rust-toolchain TOML document.

    Without ``text``, the toolchain file in the current directory is read.
    """
    if text is None:
        text = Path(TOOLCHAIN_FILE).read_text(encoding="utf-8")
    config = tomllib.loads(text)
    section = config.get("toolchain")
    if not isinstance(section, dict):
        raise ValueError("Missing toolchain key")
    channel = section.get("channel")
    if channel is None:
        raise ValueError("Missing channel key")
    if not isinstance(channel, str):
        raise ValueError("Toolchain channel is not a string")
    return channel


def _local_toolchain() -> str | None:
    try:
        return toolchain()
    except (OSError, ValueError):
        return None


def rustc() -> Path:
    """Locate the rustc binary for the configured toolchain."""
    override = os.environ.get("RUSTC_PATH")
    if override is not None:
        return Path(override)

    channel = _local_toolchain()
    if channel is not None:
        output = run_and_get_output(
            ["rustup", "which", "--toolchain", channel, "rustc"]
        )
    else:
        output = run_and_get_output(["which", "rustc"])
    return Path(output)


def miri_sysroot() -> Path:
    """Locate (setting up if needed) the Miri sysroot."""
    override = os.environ.get("MIRI_SYSROOT")
    if override is not None:
        return Path(override)

    cmd = ["cargo"]
    channel = _local_toolchain()
    if channel is not None:
        cmd.append(f"+{channel}")
    cmd += ["miri", "setup", "--print-sysroot"]

    completed = subprocess.run(cmd, capture_output=True)
    if completed.returncode != 0:
        raise CommandError("Command failed")
    return Path(completed.stdout.decode("utf-8").rstrip())