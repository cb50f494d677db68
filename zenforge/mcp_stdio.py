"""An MCP client that talks to a server started as a child process."""

from __future__ import annotations

import os
import subprocess
from typing import Mapping, Sequence

from zenforge.mcp_jsonrpc import JsonRpcClient


class StdioClient(JsonRpcClient):
    """Starts ``command`` and speaks JSON-RPC over its stdin and stdout."""

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> None:
        if not command:
            raise ValueError("mcp stdio command is required")
        environment = None
        if env:
            environment = dict(os.environ)
            environment.update(env)
        self.process = subprocess.Popen(
            [command, *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            env=environment,
        )
        super().__init__(self.process.stdout, self.process.stdin)

    def __enter__(self) -> "StdioClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> int | None:
        """Close the pipes, stop the server and return its exit status."""
        for stream in (self.process.stdin, self.process.stdout):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass
        if self.process.poll() is None:
            self.process.kill()
        return self.process.wait()