"""Keyword search over approved NPC memories."""

from __future__ import annotations

import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass


@dataclass
class MemorySearchResult:
    """A memory that matched a search, with where the match came from."""

    content: str
    source: str
    score: float


def search_memories_by_keyword(
    query: str, db_path: str | os.PathLike[str], top_k: int
) -> list[MemorySearchResult]:
    """Return up to top_k approved memories whose content contains the query."""
    with closing(sqlite3.connect(os.fspath(db_path))) as conn:
        rows = conn.execute(
            "SELECT content FROM npc_memories "
            "WHERE status = 'approved' AND content LIKE ? LIMIT ?",
            (f"%{query}%", top_k),
        ).fetchall()
    # A keyword match has no graded score.
    return [
        MemorySearchResult(content=content, source="keyword", score=1.0)
        for (content,) in rows
        if content is not None
    ]