"""Memory collaborator boundary."""

from __future__ import annotations

from cogniflow.memory.store import InMemoryMemory, MemoryEntry, MemoryStore

__all__ = ["InMemoryMemory", "MemoryEntry", "MemoryStore"]
