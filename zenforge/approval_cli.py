"""An approval broker that asks on a text terminal."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

from zenforge.approval import ApprovalError, Decision, Request

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass
class CliBroker:
    """Prints a request to ``writer`` and reads the chosen option number from ``reader``."""

    reader: TextIO | None
    writer: TextIO | None = None

    def _write(self, text: str) -> None:
        if self.writer is not None:
            self.writer.write(text)
            self.writer.flush()

    async def request(self, req: Request) -> Decision:
        req.validate()
        if self.reader is None:
            raise ApprovalError("approval cli input is not configured")
        self._write(f"Approval required: {req.title}\n")
        if req.description:
            self._write(f"{req.description}\n")
        risk = getattr(req.risk, "value", req.risk)
        self._write(f"Risk: {risk}\n")
        for number, option in enumerate(req.options, start=1):
            label = option.label or getattr(option.action, "value", option.action)
            self._write(f"{number}. {label}\n")
        self._write("> ")

        line = await asyncio.to_thread(self.reader.readline)
        if not line:
            raise EOFError("approval cli input closed")
        text = line.strip()
        if not _INTEGER.fullmatch(text):
            raise ApprovalError("invalid approval choice")
        index = int(text)
        if index < 1 or index > len(req.options):
            raise ApprovalError("invalid approval choice")
        option = req.options[index - 1]
        return Decision(
            request_id=req.id,
            action=option.action,
            scope=option.scope,
            decided_at=datetime.now(timezone.utc),
        )