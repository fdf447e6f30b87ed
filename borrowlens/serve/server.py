"""HTTP front end that runs analyses on submitted programs."""

from __future__ import annotations

import argparse
import json
import logging
import socket
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from .container import Container, ContainerError
from .models import Config, ServeError, config_from_env, parse_request

log = logging.getLogger(__name__)

_JSON = "application/json"
_TEXT = "text/plain; charset=utf-8"
_ROUTES = {"/hi": "GET", "/permissions": "POST", "/interpreter": "POST"}

Reply = tuple[int, str, bytes]


def _json_reply(status: int, payload: Any) -> Reply:
    return status, _JSON, json.dumps(payload).encode("utf-8")


def _error_reply(error: ServeError) -> Reply:
    return 500, _TEXT, str(error).encode("utf-8")


def _cleanup(container: Any) -> None:
    try:
        container.cleanup()
    except (ContainerError, OSError) as exc:
        log.warning("Error cleaning up container: %r", exc)


def _single_file(stage: str, body: bytes, container_factory: Callable[[], Any]) -> Reply:
    log.debug("Received request for %s", stage)
    try:
        request = parse_request(body)
    except ValueError as exc:
        return _json_reply(200, {"error": f"Unable to deserialize request: {exc}"})

    try:
        container = container_factory()
    except ContainerError as exc:
        return _error_reply(ServeError("container", exc))

    run = container.permissions if stage == "permissions" else container.interpreter
    try:
        try:
            response = run(request)
        finally:
            _cleanup(container)
    except ContainerError as exc:
        return _error_reply(ServeError(stage, exc))

    log.debug("returning JSON %r", response)
    return _json_reply(200, response.to_json())


def handle_request(
    method: str,
    path: str,
    body: bytes = b"",
    container_factory: Callable[[], Any] = Container,
) -> Reply:
    """Route one request; return (status, content type, body)."""
    if method == "OPTIONS":
        return 200, _TEXT, b""
    route = urlsplit(path).path
    if route not in _ROUTES:
        return 404, _TEXT, f"No route {path}".encode("utf-8")
    if method != _ROUTES[route]:
        return 405, _TEXT, b""
    if route == "/hi":
        log.info("Received Message")
        return 200, _TEXT, b"HELLO!"
    return _single_file(route.lstrip("/"), body, container_factory)


class RequestHandler(BaseHTTPRequestHandler):
    """Serves requests through ``handle_request`` with permissive CORS headers."""

    container_factory: Callable[[], Any] = Container

    def _dispatch(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        status, content_type, payload = handle_request(
            self.command, self.path, body, type(self).container_factory
        )
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Access-Control-Allow-Origin", "*")
        if self.command == "OPTIONS":
            self.send_header("Access-Control-Allow-Methods", "GET,POST")
            self.send_header("Access-Control-Allow-Headers", "content-type")
        self.end_headers()
        self.wfile.write(payload)

    do_GET = do_POST = do_OPTIONS = do_PUT = do_DELETE = do_PATCH = _dispatch

    def log_message(self, format: str, *args: Any) -> None:
        log.info("%s - %s", self.address_string(), format % args)


class _Server(ThreadingHTTPServer):
    daemon_threads = True


class _Server6(_Server):
    address_family = socket.AF_INET6


def serve(config: Config) -> None:
    """Serve requests until interrupted."""
    host, port = config.socket_address()
    server_cls = _Server6 if ":" in host else _Server
    log.info("Serving requests on %s:%s", config.address, config.port)
    with server_cls((host, port), RequestHandler) as server:
        server.serve_forever()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="borrowlens-serve",
        description="Local server running analyses on submitted programs",
    )
    parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    config = config_from_env()
    if not config.no_docker:
        raise RuntimeError("Only local execution is supported")

    log.warning(
        "The server is only used for local debugging. "
        "Requests will be processed on your machine!"
    )
    serve(config)
    return 0