"""Augmenting tasks with entries retrieved from a memory store."""

from __future__ import annotations

import abc
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Iterable

DEFAULT_HEADER = "Relevant memory"
DEFAULT_MAX_ENTRIES = 5


@dataclass
class Task:
    """A unit of work handed to an agent."""

    input: str = ""
    run_id: str = ""
    meta: dict[str, Any] | None = None


@dataclass
class Query:
    """A memory search request."""

    text: str = ""
    run_id: str = ""
    limit: int = 0
    meta: dict[str, Any] | None = None


@dataclass
class Entry:
    """One remembered piece of text with a relevance score."""

    id: str = ""
    text: str = ""
    score: float = 0.0
    meta: dict[str, Any] | None = None


def _clone_map(value: dict[str, Any] | None) -> dict[str, Any] | None:
    return None if value is None else dict(value)


def _clone_task(task: Task) -> Task:
    return dataclasses.replace(task, meta=_clone_map(task.meta))


def _clone_entries(entries: Iterable[Entry]) -> list[Entry]:
    return [dataclasses.replace(entry, meta=_clone_map(entry.meta)) for entry in entries]


class MemoryStore(abc.ABC):
    """Something that finds memory entries relevant to a query."""

    @abc.abstractmethod
    def search(self, query: Query) -> list[Entry]:
        """Return entries matching the query, most relevant first."""


class StaticStore(MemoryStore):
    """A fixed list of entries returned by descending score."""

    def __init__(self, *entries: Entry) -> None:
        self.entries = _clone_entries(entries)

    def search(self, query: Query) -> list[Entry]:
        limit = query.limit if query.limit > 0 else len(self.entries)
        ranked = sorted(_clone_entries(self.entries), key=lambda entry: entry.score, reverse=True)
        return ranked[:limit]


def _format_input(header: str, text: str, entries: Iterable[Entry]) -> str:
    lines = [f"{header}:\n"]
    for entry in entries:
        body = entry.text.strip()
        if not body:
            continue
        lines.append(f"- [{entry.id}] {body}\n" if entry.id else f"- {body}\n")
    lines.append("\nUser request:\n")
    lines.append(text)
    return "".join(lines)


@dataclass
class Augmenter:
    """Prefixes a task's input with memory relevant to it."""

    store: MemoryStore | None = None
    max_entries: int = 0
    header: str = field(default="")

    def _header(self) -> str:
        return self.header if self.header.strip() else DEFAULT_HEADER

    def augment_task(self, task: Task) -> tuple[Task, list[Entry]]:
        """Return a copy of the task with memory added, and the entries used."""
        if self.store is None:
            return _clone_task(task), []
        limit = self.max_entries if self.max_entries > 0 else DEFAULT_MAX_ENTRIES
        entries = self.store.search(
            Query(text=task.input, run_id=task.run_id, limit=limit, meta=_clone_map(task.meta))
        )
        if not entries:
            return _clone_task(task), []
        entries = list(entries)[:limit]
        out = _clone_task(task)
        out.input = _format_input(self._header(), task.input, entries)
        if out.meta is None:
            out.meta = {}
        out.meta["memory"] = {"entries": _clone_entries(entries)}
        return out, _clone_entries(entries)