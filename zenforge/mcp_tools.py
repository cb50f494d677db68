"""Tools served by an MCP server, exposed through the tool interface."""

from __future__ import annotations

import abc
import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from zenforge.approval import ToolResult


@dataclass
class ToolDefinition:
    """A tool as an MCP server describes it."""

    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolDefinition":
        schema = data.get("inputSchema")
        return cls(
            name=data.get("name") or "",
            description=data.get("description") or "",
            input_schema=dict(schema) if schema is not None else None,
        )


@dataclass
class Content:
    """One item of content returned by an MCP tool call."""

    type: str = ""
    text: str = ""
    data: str = ""
    mime_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.text:
            out["text"] = self.text
        if self.data:
            out["data"] = self.data
        if self.mime_type:
            out["mimeType"] = self.mime_type
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Content":
        return cls(
            type=data.get("type") or "",
            text=data.get("text") or "",
            data=data.get("data") or "",
            mime_type=data.get("mimeType") or "",
        )


@dataclass
class CallResult:
    """The result of an MCP ``tools/call`` request."""

    content: list[Content] = field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    is_error: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CallResult":
        structured = data.get("structuredContent")
        return cls(
            content=[Content.from_dict(item) for item in data.get("content") or []],
            structured_content=dict(structured) if structured is not None else None,
            is_error=bool(data.get("isError")),
        )


class McpClient(abc.ABC):
    """A connection to an MCP server that can list and call tools."""

    @abc.abstractmethod
    def list_tools(self) -> list[ToolDefinition]:
        """Return the tools the server offers."""

    @abc.abstractmethod
    def call_tool(self, name: str, arguments: str | bytes | None) -> CallResult:
        """Call a tool with JSON-encoded arguments."""


def _result_text(result: CallResult) -> str:
    parts: list[str] = []
    for item in result.content:
        if item.text:
            parts.append(item.text)
        elif item.type != "text" and item.data:
            parts.append(item.data)
    if parts:
        return "\n".join(parts)
    if not result.structured_content:
        return ""
    try:
        return json.dumps(result.structured_content, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


class McpTool:
    """A single MCP tool usable wherever a tool is expected."""

    def __init__(self, client: McpClient, definition: ToolDefinition) -> None:
        self._client = client
        self._definition = definition

    def name(self) -> str:
        return self._definition.name

    def description(self) -> str:
        return self._definition.description

    def schema(self) -> dict[str, Any]:
        if self._definition.input_schema is None:
            return {"type": "object"}
        return dict(self._definition.input_schema)

    def call(self, arguments: str | bytes | None, context: Any = None) -> ToolResult:
        """Call the remote tool; a remote error becomes an error result."""
        if not arguments:
            arguments = "{}"
        result = self._client.call_tool(self._definition.name, arguments)
        output = _result_text(result)
        out = ToolResult(
            output=output,
            structured=dict(result.structured_content)
            if result.structured_content is not None
            else None,
            metadata={
                "mcp": {
                    "isError": result.is_error,
                    "content": [item.to_dict() for item in result.content],
                }
            },
        )
        if result.is_error:
            out.error = output
            out.exit_code = 1
        return out


def mcp_tools(client: McpClient | None) -> list[McpTool]:
    """Return one tool for each tool the client's server lists."""
    if client is None:
        raise ValueError("mcp client is required")
    tools = []
    for definition in client.list_tools():
        if not definition.name.strip():
            raise ValueError("mcp tool name is required")
        tools.append(McpTool(client, definition))
    return tools