"""Pending, approved and rejected NPC memories stored in the npc_memories table."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence


class MemoryStatus(Enum):
    """Review state of a stored memory."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, text: str) -> "MemoryStatus":
        """Return the status named by text; anything unknown counts as pending."""
        try:
            return cls(text)
        except ValueError:
            return cls.PENDING


@dataclass
class Memory:
    """One memory row of an NPC."""

    id: int
    npc_name: str
    content: str
    status: MemoryStatus
    embedding: Optional[list[float]]
    created_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_embedding(blob: Optional[bytes]) -> Optional[list[float]]:
    if blob is None:
        return None
    try:
        values = json.loads(bytes(blob))
    except (ValueError, TypeError):
        return None
    if not isinstance(values, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    ):
        return None
    return [float(v) for v in values]


def save_memory(conn: sqlite3.Connection, npc_name: str, content: str) -> int:
    """Store a pending memory for an NPC and return its row id."""
    cursor = conn.execute(
        "INSERT INTO npc_memories (npc_name, content, status, created_at) VALUES (?, ?, ?, ?)",
        (npc_name, content, MemoryStatus.PENDING.value, _now()),
    )
    return cursor.lastrowid


def get_pending_memories(conn: sqlite3.Connection) -> list[Memory]:
    """Return every pending memory, oldest first."""
    rows = conn.execute(
        "SELECT id, npc_name, content, status, embedding, created_at "
        "FROM npc_memories WHERE status = 'pending' ORDER BY id ASC"
    ).fetchall()
    memories = []
    for memory_id, npc_name, content, status, embedding, created_at in rows:
        if None in (memory_id, npc_name, content, status, created_at):
            continue
        memories.append(
            Memory(
                id=memory_id,
                npc_name=npc_name,
                content=content,
                status=MemoryStatus.parse(status),
                embedding=_decode_embedding(embedding),
                created_at=created_at,
            )
        )
    return memories


def update_memory_status(
    conn: sqlite3.Connection, memory_id: int, status: MemoryStatus
) -> None:
    """Set the status of a memory and stamp its update time."""
    conn.execute(
        "UPDATE npc_memories SET status = ?, updated_at = ? WHERE id = ?",
        (status.value, _now(), memory_id),
    )


def set_memory_embedding(
    conn: sqlite3.Connection, memory_id: int, embedding: Sequence[float]
) -> None:
    """Store an embedding for a memory as a JSON array."""
    try:
        blob = json.dumps(
            [float(v) for v in embedding], separators=(",", ":"), allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Failed to serialize embedding: {exc}") from exc
    conn.execute(
        "UPDATE npc_memories SET embedding = ? WHERE id = ?", (blob, memory_id)
    )