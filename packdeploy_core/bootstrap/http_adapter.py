"""Ephemeral HTTP listener that serves the question schema and accepts answers.

``GET /schema`` returns the questions, ``POST /answers`` hands a JSON object to
the waiting ``ask`` call. The acceptor runs on a daemon thread and talks to
the caller through a single-slot queue; both sides give up after the
configured timeout.
"""

from __future__ import annotations

import json
import logging
import queue
import socket
import threading
import time
from typing import Any, Sequence

from packdeploy_core.errors import ConfigError, HttpParseError, InteractionTimeoutError

from .flow_runner import Question, collect_answers, questions_schema
from .http_parser import HttpRequest, HttpRequestParser

logger = logging.getLogger(__name__)

_ACCEPT_POLL_SECONDS = 0.2
_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found"}


def _parse_bind(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, 0
    try:
        return host.strip("[]") or "127.0.0.1", int(port)
    except ValueError as exc:
        raise ConfigError(f"invalid http bind address: {addr}") from exc


def _response(status: int, body: bytes = b"", content_type: str | None = None) -> bytes:
    lines = [f"HTTP/1.1 {status} {_REASONS.get(status, 'Error')}"]
    if content_type:
        lines.append(f"Content-Type: {content_type}")
    lines.append(f"Content-Length: {len(body)}")
    lines.append("Connection: close")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1") + body


class HttpPromptAdapter:
    def __init__(self, listener: socket.socket, timeout: float) -> None:
        self._listener = listener
        self.timeout = float(timeout)
        self.bound_addr: tuple[str, int] = listener.getsockname()[:2]

    @classmethod
    def bind(cls, addr: str, timeout: float) -> "HttpPromptAdapter":
        host, port = _parse_bind(addr)
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(8)
        except OSError:
            listener.close()
            raise
        adapter = cls(listener, timeout)
        logger.info("http prompt adapter listening addr=%s:%s", *adapter.bound_addr)
        return adapter

    @property
    def base_url(self) -> str:
        host, port = self.bound_addr
        host = f"[{host}]" if ":" in host else host
        return f"http://{host}:{port}"

    def close(self) -> None:
        self._listener.close()

    def __enter__(self) -> "HttpPromptAdapter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def ask(self, questions: Sequence[Question]) -> dict[str, Any]:
        schema = json.dumps(questions_schema(questions)).encode("utf-8")
        answers: queue.Queue[dict[str, Any]] = queue.Queue(maxsize=1)
        stop = threading.Event()
        deadline = time.monotonic() + self.timeout

        worker = threading.Thread(
            target=self._accept_loop,
            args=(schema, answers, stop, deadline),
            name="http-prompt-acceptor",
            daemon=True,
        )
        worker.start()
        try:
            provided = answers.get(timeout=self.timeout)
        except queue.Empty as exc:
            raise InteractionTimeoutError(f"no answers received within {self.timeout:.1f}s") from exc
        finally:
            stop.set()
        worker.join(timeout=_ACCEPT_POLL_SECONDS * 2)
        return collect_answers(questions, provided)

    def _accept_loop(
        self,
        schema: bytes,
        answers: "queue.Queue[dict[str, Any]]",
        stop: threading.Event,
        deadline: float,
    ) -> None:
        while not stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._listener.settimeout(min(_ACCEPT_POLL_SECONDS, remaining))
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                logger.debug("http prompt listener stopped: %s", exc)
                break
            with conn:
                if self._serve(conn, schema, answers, deadline):
                    break

    def _serve(
        self,
        conn: socket.socket,
        schema: bytes,
        answers: "queue.Queue[dict[str, Any]]",
        deadline: float,
    ) -> bool:
        """Handle one request; returns True once answers were delivered."""
        try:
            request = self._read_request(conn, deadline)
        except HttpParseError as exc:
            logger.debug("rejecting malformed request: %s", exc)
            self._send(conn, _response(400))
            return False
        if request is None:
            return False

        logger.debug("http prompt request method=%s path=%s", request.method, request.path)
        if request.method == "GET" and request.path == "/schema":
            self._send(conn, _response(200, schema, "application/json"))
            return False
        if request.method == "POST" and request.path == "/answers":
            try:
                payload = json.loads(request.body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                self._send(conn, _response(400))
                return False
            if not isinstance(payload, dict):
                self._send(conn, _response(400))
                return False
            try:
                answers.put_nowait(payload)
            except queue.Full:
                return True
            self._send(conn, _response(200))
            return True
        self._send(conn, _response(404))
        return False

    @staticmethod
    def _read_request(conn: socket.socket, deadline: float) -> HttpRequest | None:
        parser = HttpRequestParser()
        while not parser.complete:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            conn.settimeout(remaining)
            try:
                chunk = conn.recv(4096)
            except OSError:
                return None
            if not chunk:
                return None
            parser.feed(chunk)
        return parser.result()

    @staticmethod
    def _send(conn: socket.socket, data: bytes) -> None:
        try:
            conn.sendall(data)
        except OSError as exc:
            logger.debug("http prompt response not delivered: %s", exc)
