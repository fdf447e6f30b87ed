"""A scratch project directory in which the analysis tool is run."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..workspace import CommandError, miri_sysroot
from .models import ServerResponse, SingleFileRequest

log = logging.getLogger(__name__)

DEFAULT_PROJECT_PATH = "aquascope_tmp_proj"
COMMAND_TIMEOUT = 20.0


class ContainerError(RuntimeError):
    """Raised when preparing or running a command in the container fails."""


@dataclass
class _Command:
    args: list[str]
    env: dict[str, str] = field(default_factory=dict)


def _sysroot() -> str:
    try:
        return str(miri_sysroot())
    except (CommandError, OSError, UnicodeDecodeError) as exc:
        raise ContainerError(f"Miscellaneous error: {exc}") from exc


class Container:
    """A temporary workspace holding a fresh binary project."""

    def __init__(self, new_project: bool = True) -> None:
        try:
            self._workspace = tempfile.TemporaryDirectory()
        except OSError as exc:
            raise ContainerError(
                f"Unable to create temporary local directory {exc}"
            ) from exc
        self.workspace = Path(self._workspace.name)
        self.project_dir: str | None = None
        if new_project:
            try:
                self.cargo_new()
            except BaseException:
                self._workspace.cleanup()
                raise

    def __enter__(self) -> Container:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def cwd(self) -> Path:
        """The project directory, or the workspace before a project exists."""
        if self.project_dir is None:
            return self.workspace
        return self.workspace / self.project_dir

    def main_abs_path(self) -> str:
        return str(self.cwd() / "src" / "main.rs")

    def exec_output(self, cmd: Sequence[str] | _Command) -> tuple[str, str]:
        """Run ``cmd`` in the project directory and return (stdout, stderr)."""
        command = cmd if isinstance(cmd, _Command) else _Command(list(cmd))
        timeout = COMMAND_TIMEOUT
        env = {**os.environ, **command.env} if command.env else None
        try:
            completed = subprocess.run(
                command.args,
                cwd=self.cwd(),
                env=env,
                capture_output=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ContainerError(
                f"Command execution took longer than {round(timeout * 1000)} ms"
            ) from exc
        except OSError as exc:
            raise ContainerError(f"Unable to execute local command {exc}") from exc

        stdout = completed.stdout.decode("utf-8")
        stderr = completed.stderr.decode("utf-8")
        log.info("%s", stderr)
        return stdout, stderr

    def cargo_new(self) -> None:
        """Create the binary project; a second call is ignored."""
        if self.project_dir is not None:
            log.warning("Attempt to create a second project directory ignored")
            return

        output, stderr = self.exec_output(
            ["cargo", "new", "--bin", DEFAULT_PROJECT_PATH, "--quiet"]
        )
        if stderr.strip():
            log.error("%s", stderr)
            raise ContainerError(f"`cargo new` failed {stderr}")

        log.debug("Cargo output %s", output)
        self.project_dir = DEFAULT_PROJECT_PATH

    def get_pid(self, process: str) -> int:
        """Return the first process id that ``pidof`` reports for ``process``."""
        response, _ = self.exec_output(["pidof", process])
        first = response.split(" ")[0]
        try:
            return int(first)
        except ValueError:
            raise ValueError(f"Invalid response in get_pid:\n    {response}") from None

    def write_source_code(self, code: str) -> None:
        try:
            Path(self.main_abs_path()).write_text(code, encoding="utf-8")
        except OSError as exc:
            raise ContainerError(f"Unable to create output directory: {exc}") from exc

    def permissions_command(self) -> _Command:
        return _Command(
            ["cargo", "--quiet", "aquascope", "permissions"],
            {
                "RUST_LOG": "trace",
                "RUST_BACKTRACE": "1",
                "MIRI_SYSROOT": _sysroot(),
            },
        )

    def interpreter_command(self, request: SingleFileRequest) -> _Command:
        args = ["cargo", "--quiet", "aquascope"]
        if isinstance(request.config, dict) and "shouldFail" in request.config:
            args.append("--should-fail")
        args.append("interpreter")
        return _Command(
            args,
            {
                "RUST_LOG": "debug",
                "RUST_BACKTRACE": "1",
                "MIRI_SYSROOT": _sysroot(),
            },
        )

    def _run(self, code: str, command: _Command) -> ServerResponse:
        self.write_source_code(code)
        stdout, stderr = self.exec_output(command)
        # Anything on stdout is taken as a result worth reporting.
        return ServerResponse(success=bool(stdout.strip()), stdout=stdout, stderr=stderr)

    def permissions(self, request: SingleFileRequest) -> ServerResponse:
        """Run the permissions analysis on the request's code."""
        return self._run(request.code, self.permissions_command())

    def interpreter(self, request: SingleFileRequest) -> ServerResponse:
        """Run the interpreter on the request's code."""
        return self._run(request.code, self.interpreter_command(request))

    def cleanup(self) -> None:
        """Remove the workspace and everything in it."""
        self._workspace.cleanup()