"""Configuration, request and response types for the local analysis server."""

from __future__ import annotations

import ipaddress
import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 8008

ADDRESS_VARIABLE = "AQUASCOPE_SERVER_ADDRESS"
PORT_VARIABLE = "AQUASCOPE_SERVER_PORT"

_PORT_RE = re.compile(r"\+?[0-9]+")

_STAGE_MESSAGES = {
    "container": "Creating the container failed {}",
    "permissions": "Running permissions analysis failed  {}",
    "interpreter": "Running interpreter failed {}",
    "unknown": "An Unknown error occurred: {}",
}


@dataclass(frozen=True)
class Config:
    """Where the server listens."""

    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    no_docker: bool = True

    def socket_address(self) -> tuple[str, int]:
        """Return the (host, port) pair to bind; the address must be an IP literal."""
        try:
            ip = ipaddress.ip_address(self.address)
        except ValueError as exc:
            raise ValueError("Invalid address") from exc
        return str(ip), self.port


def _parse_port(text: str | None) -> int | None:
    if text is None or not _PORT_RE.fullmatch(text):
        return None
    port = int(text)
    return port if port <= 0xFFFF else None


def config_from_env(environ: Mapping[str, str] | None = None) -> Config:
    """Build a configuration from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    address = env.get(ADDRESS_VARIABLE, DEFAULT_ADDRESS)
    port = _parse_port(env.get(PORT_VARIABLE))
    return Config(
        address=address,
        port=DEFAULT_PORT if port is None else port,
        no_docker=True,
    )


@dataclass(frozen=True)
class SingleFileRequest:
    """A program to analyse, with optional free-form configuration."""

    code: str
    config: Any = None


def parse_request(data: bytes | bytearray | str | Mapping[str, Any]) -> SingleFileRequest:
    """Decode a request body; raises ValueError when it is not a valid request."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(str(exc)) from exc
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ValueError(str(exc)) from exc
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    if "code" not in data:
        raise ValueError("missing field `code`")
    code = data["code"]
    if not isinstance(code, str):
        raise ValueError("invalid type for field `code`: expected a string")
    return SingleFileRequest(code=code, config=data.get("config"))


@dataclass(frozen=True)
class ServerResponse:
    """The outcome of running the analysis tool."""

    success: bool
    stdout: str
    stderr: str

    def to_json(self) -> dict[str, Any]:
        return {"success": self.success, "stdout": self.stdout, "stderr": self.stderr}


class ServeError(Exception):
    """A failure while handling a request, tagged with the stage that failed.

    Stages are ``container``, ``permissions``, ``interpreter`` and ``unknown``.
    """

    def __init__(self, stage: str, detail: object) -> None:
        try:
            template = _STAGE_MESSAGES[stage]
        except KeyError:
            raise ValueError(f"Unknown error stage: {stage}") from None
        self.stage = stage
        self.detail = detail
        super().__init__(template.format(detail))