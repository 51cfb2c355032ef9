"""Incremental HTTP/1.x request parser used by the listener adapter.

The parser is fed raw bytes as they arrive and moves through three states:
request line and headers up to the blank line, then a body of exactly
``Content-Length`` bytes, then done. It never touches sockets.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from packdeploy_core.errors import HttpParseError

STATE_HEADERS = "headers"
STATE_BODY = "body"
STATE_DONE = "done"

_HEADER_TERMINATOR = b"\r\n\r\n"
DEFAULT_MAX_HEADER_BYTES = 16 * 1024
DEFAULT_MAX_BODY_BYTES = 1024 * 1024


@dataclass
class HttpRequest:
    method: str
    path: str
    version: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class HttpRequestParser:
    def __init__(
        self,
        *,
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ) -> None:
        self.max_header_bytes = max_header_bytes
        self.max_body_bytes = max_body_bytes
        self.state = STATE_HEADERS
        self._buffer = bytearray()
        self._content_length = 0
        self._request: HttpRequest | None = None

    @property
    def complete(self) -> bool:
        return self.state == STATE_DONE

    def feed(self, data: bytes) -> bool:
        """Consume a chunk; returns True once the whole request is available."""
        if self.state == STATE_DONE:
            return True
        self._buffer.extend(data)
        if self.state == STATE_HEADERS:
            end = self._buffer.find(_HEADER_TERMINATOR)
            if end < 0:
                if len(self._buffer) > self.max_header_bytes:
                    raise HttpParseError("request headers too large")
                return False
            head = bytes(self._buffer[:end])
            del self._buffer[: end + len(_HEADER_TERMINATOR)]
            self._request = self._parse_head(head)
            self.state = STATE_BODY
        if self.state == STATE_BODY and self._request is not None:
            if len(self._buffer) >= self._content_length:
                self._request.body = bytes(self._buffer[: self._content_length])
                self.state = STATE_DONE
        return self.state == STATE_DONE

    def result(self) -> HttpRequest:
        if self.state != STATE_DONE or self._request is None:
            raise HttpParseError("request incomplete")
        return self._request

    def _parse_head(self, head: bytes) -> HttpRequest:
        if len(head) > self.max_header_bytes:
            raise HttpParseError("request headers too large")
        lines = head.decode("iso-8859-1").split("\r\n")
        parts = lines[0].split(" ")
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            raise HttpParseError(f"malformed request line: {lines[0]!r}")
        method, path, version = parts
        headers: dict[str, str] = {}
        for line in lines[1:]:
            if not line:
                continue
            if ":" not in line:
                raise HttpParseError(f"malformed header line: {line!r}")
            name, value = line.split(":", 1)
            headers[name.strip().lower()] = value.strip()

        raw_length = headers.get("content-length", "0")
        try:
            length = int(raw_length)
        except ValueError as exc:
            raise HttpParseError(f"invalid Content-Length: {raw_length!r}") from exc
        if length < 0:
            raise HttpParseError(f"invalid Content-Length: {raw_length!r}")
        if length > self.max_body_bytes:
            raise HttpParseError("request body too large")
        self._content_length = length
        return HttpRequest(method=method.upper(), path=path, version=version, headers=headers)
