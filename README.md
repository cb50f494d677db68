# zenforge

Building blocks for tool-using agent runtimes.

## What is inside

- `zenforge.approval` — approval requests and decisions (`Request`, `Decision`,
  `Option`, `default_options()`), the `approval_required` tool result helpers
  (`required_result`, `request_from_result`, `approved_metadata`) and ready-made
  brokers: `always_allow()`, `always_deny(reason)`, `with_timeout(broker, timeout)`
  and `ChannelBroker`.
- `zenforge.approval_cli` — `CliBroker`, which prints an approval prompt and
  reads the chosen option number from a text stream.
- `zenforge.checkpoint` — the `Checkpoint` record, its `validate()` rules and the
  `CheckpointStore` interface, plus `CheckpointNotFound`.
- `zenforge.checkpoint_memory`, `zenforge.checkpoint_jsonl`,
  `zenforge.checkpoint_sqlite` — in-memory, file (JSONL history plus
  `latest.json`) and SQLite checkpoint stores.
- `zenforge.memory` — `Augmenter`, which prepends retrieved memory entries
  from a `MemoryStore` (such as `StaticStore`) to a task's input.
- `zenforge.mcp_jsonrpc`, `zenforge.mcp_stdio`, `zenforge.mcp_tools` — a
  Content-Length framed JSON-RPC client for MCP servers, a client that starts a
  server as a child process, and `mcp_tools(client)` to expose server tools.
- `zenforge.submit` — turn a submitted approval payload into a `Decision`.

## Install

```
pip install .
```

Run the tests with:

```
pip install ".[test]"
pytest
```

## Example

```python
from zenforge.approval import Request, RiskLevel, default_options, always_allow
from zenforge.checkpoint_memory import MemoryCheckpointStore

req = Request(
    id="approval_1",
    run_id="run_1",
    operation="shell.command",
    title="Approve command",
    risk=RiskLevel.MEDIUM,
    options=default_options(),
)
decision = always_allow()(req)
print(decision.action)  # DecisionAction.APPROVE

store = MemoryCheckpointStore()
```

Loading a checkpoint that does not exist raises `CheckpointNotFound`.