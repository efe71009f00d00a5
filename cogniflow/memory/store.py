"""Memory collaborator boundary and the default in-process implementation.

The director reads memory before anything else on every turn and writes a
condensed summary back at the end. Stores are treated as always-available,
but the director isolates every failure raised here.

Memory context format (what ``read`` returns):

    \\n[Memory]\\nFacts: fact one; fact two
    Recent: previous query; another query
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import structlog

log = structlog.get_logger(__name__)

MAX_FACTS_IN_CONTEXT = 5
MAX_RECENT_IN_CONTEXT = 3


@dataclass
class MemoryEntry:
    """Condensed record of one turn written back after synthesis."""

    user_id: str | None
    query: str
    plugins: list[str] = field(default_factory=list)
    entry_type: str = "response"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class MemoryStore(Protocol):
    """Read/write boundary the director depends on."""

    async def read(self, user_id: str | None) -> str: ...

    async def write(self, entry: MemoryEntry) -> None: ...


class InMemoryMemory:
    """Per-user facts plus a bounded working memory of recent turns."""

    def __init__(self, working_memory_size: int = 50) -> None:
        if working_memory_size < 1:
            raise ValueError("working_memory_size must be >= 1")
        self._size = working_memory_size
        self._facts: dict[str, list[str]] = {}
        self._recent: dict[str, deque[MemoryEntry]] = {}

    @staticmethod
    def _key(user_id: str | None) -> str:
        return user_id or "anonymous"

    def add_fact(self, user_id: str | None, fact: str) -> None:
        fact = fact.strip()
        if not fact:
            return
        facts = self._facts.setdefault(self._key(user_id), [])
        if fact not in facts:
            facts.append(fact)

    def facts(self, user_id: str | None) -> list[str]:
        return list(self._facts.get(self._key(user_id), []))

    def recent(self, user_id: str | None) -> list[MemoryEntry]:
        return list(self._recent.get(self._key(user_id), []))

    async def read(self, user_id: str | None) -> str:
        key = self._key(user_id)
        facts = self._facts.get(key, [])
        recent = list(self._recent.get(key, []))
        if not facts and not recent:
            return ""
        lines = ["", "[Memory]"]
        if facts:
            lines.append("Facts: " + "; ".join(facts[:MAX_FACTS_IN_CONTEXT]))
        if recent:
            queries = [entry.query for entry in recent[-MAX_RECENT_IN_CONTEXT:]]
            lines.append("Recent: " + "; ".join(queries))
        return "\n".join(lines)

    async def write(self, entry: MemoryEntry) -> None:
        buffer = self._recent.setdefault(self._key(entry.user_id), deque(maxlen=self._size))
        buffer.append(entry)
        log.debug(
            "memory.entry_written",
            user_id=entry.user_id,
            entry_type=entry.entry_type,
            plugins=entry.plugins,
        )

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._facts.clear()
            self._recent.clear()
            return
        self._facts.pop(self._key(user_id), None)
        self._recent.pop(self._key(user_id), None)
