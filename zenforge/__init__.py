"""Runtime building blocks for tool-using agents: approvals, checkpoints, memory and MCP adapters."""

__version__ = "0.1.0"