"""A JSON-RPC client for MCP servers using Content-Length framing."""

from __future__ import annotations

import dataclasses
import json
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from zenforge.mcp_tools import CallResult, McpClient, ToolDefinition

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_CLIENT_NAME = "zenforge"
DEFAULT_CLIENT_VERSION = "0.1.0"


class RpcError(Exception):
    """An error returned by the remote side of a JSON-RPC call."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"mcp jsonrpc error {code}: {message}")


@dataclass
class Implementation:
    """The name and version of a client or server."""

    name: str = ""
    version: str = ""


@dataclass
class InitializeParams:
    """Parameters of the MCP ``initialize`` request."""

    protocol_version: str = ""
    client_info: Implementation = field(default_factory=Implementation)
    capabilities: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "clientInfo": {"name": self.client_info.name, "version": self.client_info.version},
        }
        if self.capabilities:
            out["capabilities"] = dict(self.capabilities)
        return out


def write_frame(stream: BinaryIO, value: Any) -> None:
    """Write one JSON value preceded by its Content-Length header."""
    data = json.dumps(value, separators=(",", ":")).encode("utf-8")
    stream.write(f"Content-Length: {len(data)}\r\n\r\n".encode("ascii"))
    stream.write(data)
    flush = getattr(stream, "flush", None)
    if flush is not None:
        flush()


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise EOFError("unexpected end of MCP frame")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(stream: BinaryIO) -> Any:
    """Read one framed JSON value; raise EOFError when the stream ends."""
    content_length = 0
    while True:
        raw = stream.readline()
        if not raw or not raw.endswith(b"\n"):
            raise EOFError("end of MCP stream")
        line = raw.decode("utf-8").rstrip("\r\n")
        if not line:
            break
        name, sep, value = line.partition(":")
        if not sep:
            raise ValueError(f"invalid MCP header {line!r}")
        if name.strip().lower() == "content-length":
            try:
                content_length = int(value.strip())
            except ValueError as exc:
                raise ValueError(f"invalid MCP content length {value!r}: {exc}") from exc
    if content_length <= 0:
        raise ValueError("missing MCP content length")
    return json.loads(_read_exactly(stream, content_length))


class JsonRpcClient(McpClient):
    """Sends requests on ``writer`` and reads responses from ``reader``."""

    def __init__(self, reader: BinaryIO | None, writer: BinaryIO | None) -> None:
        self._reader = reader
        self._writer = writer
        self._lock = threading.Lock()
        self._next_id = 0

    def initialize(self, params: InitializeParams | None = None) -> None:
        """Perform the MCP handshake."""
        params = params or InitializeParams()
        if not params.protocol_version:
            params = dataclasses.replace(params, protocol_version=DEFAULT_PROTOCOL_VERSION)
        if not params.client_info.name:
            params = dataclasses.replace(
                params,
                client_info=Implementation(DEFAULT_CLIENT_NAME, DEFAULT_CLIENT_VERSION),
            )
        self._call("initialize", params.to_dict())
        self._notify("notifications/initialized", {})

    def list_tools(self) -> list[ToolDefinition]:
        result = self._call("tools/list", {}) or {}
        return [ToolDefinition.from_dict(item) for item in result.get("tools") or []]

    def call_tool(self, name: str, arguments: str | bytes | None) -> CallResult:
        if not arguments:
            arguments = "{}"
        try:
            args = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise ValueError(f"parse MCP tool arguments: {exc}") from exc
        if args is not None and not isinstance(args, dict):
            raise ValueError("parse MCP tool arguments: arguments must be a JSON object")
        result = self._call("tools/call", {"name": name, "arguments": args}) or {}
        return CallResult.from_dict(result)

    def _check_open(self, need_reader: bool) -> None:
        if self._writer is None or (need_reader and self._reader is None):
            raise RuntimeError("mcp jsonrpc client is not open")

    def _call(self, method: str, params: Any) -> Any:
        self._check_open(need_reader=True)
        with self._lock:
            self._next_id += 1
            request_id = self._next_id
            write_frame(
                self._writer,
                {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
            )
            while True:
                response = read_frame(self._reader)
                if not isinstance(response, dict) or response.get("id") != request_id:
                    continue
                error = response.get("error")
                if error is not None:
                    raise RpcError(int(error.get("code") or 0), str(error.get("message") or ""))
                return response.get("result")

    def _notify(self, method: str, params: Any) -> None:
        self._check_open(need_reader=False)
        with self._lock:
            write_frame(self._writer, {"jsonrpc": "2.0", "method": method, "params": params})