"""History store with memories, knowledge graphs, labels and execution logs."""

from __future__ import annotations

import os
from typing import Any, Iterable, Optional, Sequence

from npcstore.history_base import (
    HistoryStore,
    _rfc3339_now,
    _sql_timestamp,
    generate_message_id,
)

_NPC_VERSIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS npc_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    npc_name TEXT NOT NULL,
    version INTEGER NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT
);
"""

_APPROVED_STATUSES = ("approved", "human-approved", "human-edited")
_APPROVED_SQL = "('approved', 'human-approved', 'human-edited')"


def _records(
    keys: Sequence[str],
    rows: Iterable[Sequence[Any]],
    optional: Iterable[str] = (),
) -> list[dict[str, Any]]:
    """Turn rows into dicts, dropping rows where a required column is NULL."""
    nullable = set(optional)
    result = []
    for row in rows:
        record = dict(zip(keys, row))
        if any(value is None and key not in nullable for key, value in record.items()):
            continue
        result.append(record)
    return result


class CommandHistory(HistoryStore):
    """The full history store: conversations plus memory and execution tracking."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        super().__init__(db_path)
        self._conn.executescript(_NPC_VERSIONS_SCHEMA)
        self._conn.commit()

    def save_jinx_execution(
        self,
        conversation_id: str,
        jinx_name: str,
        input_text: str,
        output: str,
        status: str,
        npc: Optional[str] = None,
        team: Optional[str] = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Record one run of a jinx."""
        self._execute(
            "INSERT INTO jinx_executions "
            "(message_id, jinx_name, input, timestamp, npc, team, conversation_id, "
            "output, status, error_message, duration_ms) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                generate_message_id(),
                jinx_name,
                input_text,
                _sql_timestamp(),
                npc,
                team,
                conversation_id,
                output,
                status,
                error_message,
                duration_ms,
            ),
        )

    def save_memory(self, npc_name: str, content: str) -> int:
        """Store a pending memory for an NPC and return its row id."""
        cursor = self._execute(
            "INSERT INTO npc_memories (npc_name, content, status, created_at) "
            "VALUES (?, ?, 'pending', ?)",
            (npc_name, content, _rfc3339_now()),
        )
        return cursor.lastrowid

    def get_pending_memories(self) -> list[tuple[int, str, str]]:
        """Return (id, npc_name, content) of every pending memory, oldest first."""
        rows = self._query(
            "SELECT id, npc_name, content FROM npc_memories "
            "WHERE status = 'pending' ORDER BY id ASC"
        )
        return [tuple(row) for row in rows if None not in row]

    def save_kg_to_db(self, npc_name: str, kg_json: str, generation: int) -> None:
        """Store an NPC's knowledge graph, replacing an earlier one."""
        now = _rfc3339_now()
        existing = self._query_one(
            "SELECT id FROM knowledge_graphs WHERE npc_name = ?", (npc_name,)
        )
        if existing is not None:
            self._execute(
                "UPDATE knowledge_graphs SET kg_data = ?, generation = ?, updated_at = ? "
                "WHERE id = ?",
                (kg_json, generation, now, existing[0]),
            )
        else:
            self._execute(
                "INSERT INTO knowledge_graphs (npc_name, kg_data, generation, created_at) "
                "VALUES (?, ?, ?, ?)",
                (npc_name, kg_json, generation, now),
            )

    def load_kg_from_db(self, npc_name: str) -> Optional[tuple[str, int]]:
        """Return (kg_json, generation) for an NPC, or None."""
        row = self._query_one(
            "SELECT kg_data, generation FROM knowledge_graphs "
            "WHERE npc_name = ? ORDER BY id DESC LIMIT 1",
            (npc_name,),
        )
        return None if row is None else (row[0], int(row[1]))

    def log_entry(self, entity_id: str, entry_type: str, content: str, metadata: str) -> None:
        """Record a log entry in the labels table."""
        self.add_label(entry_type, entity_id, content, metadata)

    def save_npc_version(self, npc_name: str, content: str) -> int:
        """Store a new version of an NPC definition and return its number."""
        row = self._query_one(
            "SELECT COALESCE(MAX(version), 0) + 1 FROM npc_versions WHERE npc_name = ?",
            (npc_name,),
        )
        version = 1 if row is None else int(row[0])
        self._execute(
            "INSERT INTO npc_versions (npc_name, version, content, created_at) "
            "VALUES (?, ?, ?, ?)",
            (npc_name, version, content, _rfc3339_now()),
        )
        return version

    def get_npc_versions(self, npc_name: str) -> list[tuple[int, str]]:
        """Return (version, created_at) pairs, newest version first."""
        rows = self._query(
            "SELECT version, created_at FROM npc_versions "
            "WHERE npc_name = ? ORDER BY version DESC",
            (npc_name,),
        )
        return [(int(row[0]), row[1]) for row in rows if None not in row]

    def get_npc_version_content(
        self, npc_name: str, version: Optional[int] = None
    ) -> Optional[str]:
        """Return the content of a version, or of the latest when none is given."""
        if version is None:
            row = self._query_one(
                "SELECT content FROM npc_versions "
                "WHERE npc_name = ? ORDER BY version DESC LIMIT 1",
                (npc_name,),
            )
        else:
            row = self._query_one(
                "SELECT content FROM npc_versions WHERE npc_name = ? AND version = ?",
                (npc_name, version),
            )
        return None if row is None else row[0]

    def rollback_npc_to_version(self, npc_name: str, version: int) -> Optional[str]:
        """Return the content stored for the given version."""
        return self.get_npc_version_content(npc_name, version)

    def add_memory_to_database(
        self,
        message_id: str,
        conversation_id: str,
        npc: str,
        team: str,
        directory_path: str,
        initial_memory: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> int:
        """Store a pending memory in the lifecycle table and return its id."""
        now = _rfc3339_now()
        cursor = self._execute(
            "INSERT INTO memory_lifecycle "
            "(message_id, conversation_id, npc, team, directory_path, timestamp, "
            "initial_memory, status, model, provider, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?)",
            (
                message_id,
                conversation_id,
                npc,
                team,
                directory_path,
                now,
                initial_memory,
                model,
                provider,
                now,
            ),
        )
        return cursor.lastrowid

    def get_memories_for_scope(
        self, npc: str, team: str, directory_path: str, limit: int
    ) -> list[dict[str, Any]]:
        """Return approved memories of a scope, newest first."""
        rows = self._query(
            "SELECT id, initial_memory, final_memory, status, created_at "
            "FROM memory_lifecycle WHERE npc = ? AND team = ? AND directory_path = ? "
            f"AND status IN {_APPROVED_SQL} ORDER BY created_at DESC LIMIT ?",
            (npc, team, directory_path, limit),
        )
        return _records(
            ("id", "initial_memory", "final_memory", "status", "created_at"),
            rows,
            optional=("final_memory",),
        )

    def search_memory(
        self,
        query: str,
        npc: Optional[str] = None,
        team: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Return memories whose text contains the query, newest first.

        The team filter applies only together with an npc filter.
        """
        sql = (
            "SELECT id, initial_memory, final_memory, status, npc, team "
            "FROM memory_lifecycle WHERE (initial_memory LIKE ? OR final_memory LIKE ?)"
        )
        pattern = f"%{query}%"
        params: list[Any] = [pattern, pattern]
        if npc is not None:
            sql += " AND npc = ?"
            params.append(npc)
            if team is not None:
                sql += " AND team = ?"
                params.append(team)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return _records(
            ("id", "initial_memory", "final_memory", "status", "npc", "team"),
            self._query(sql, params),
            optional=("final_memory",),
        )

    def get_memory_examples_for_context(
        self, npc: str, team: str, directory_path: str, limit: int
    ) -> list[str]:
        """Return the non-empty text of approved memories of a scope."""
        texts = []
        for memory in self.get_memories_for_scope(npc, team, directory_path, limit):
            final = memory["final_memory"]
            text = final if final is not None else memory["initial_memory"]
            if text:
                texts.append(text)
        return texts

    def update_memory_status(
        self, memory_id: int, new_status: str, final_memory: Optional[str] = None
    ) -> None:
        """Set a memory's status, and its final text when given."""
        if final_memory is not None:
            self._execute(
                "UPDATE memory_lifecycle SET status = ?, final_memory = ? WHERE id = ?",
                (new_status, final_memory, memory_id),
            )
        else:
            self._execute(
                "UPDATE memory_lifecycle SET status = ? WHERE id = ?",
                (new_status, memory_id),
            )

    def get_approved_memories_by_scope(self) -> dict[str, list[str]]:
        """Group the text of every approved memory by NPC."""
        rows = self._query(
            "SELECT npc, COALESCE(final_memory, initial_memory) FROM memory_lifecycle "
            f"WHERE status IN {_APPROVED_SQL} ORDER BY npc"
        )
        grouped: dict[str, list[str]] = {}
        for npc, text in rows:
            if npc is None or text is None:
                continue
            grouped.setdefault(npc, []).append(text)
        return grouped

    def get_jinx_executions(
        self, jinx_name: Optional[str] = None, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Return recorded jinx runs, newest first, optionally for one jinx."""
        columns = "message_id, jinx_name, input, output, status, timestamp"
        if jinx_name is not None:
            rows = self._query(
                f"SELECT {columns} FROM jinx_executions WHERE jinx_name = ? "
                "ORDER BY timestamp DESC LIMIT ?",
                (jinx_name, limit),
            )
        else:
            rows = self._query(
                f"SELECT {columns} FROM jinx_executions ORDER BY timestamp DESC LIMIT ?",
                (limit,),
            )
        return _records(
            ("message_id", "jinx_name", "input", "output", "status", "timestamp"), rows
        )

    def get_npc_executions(self, npc_name: str, limit: int) -> list[dict[str, Any]]:
        """Return recorded runs of an NPC, newest first."""
        rows = self._query(
            "SELECT message_id, input, npc, team, model, provider, timestamp "
            "FROM npc_executions WHERE npc = ? ORDER BY timestamp DESC LIMIT ?",
            (npc_name, limit),
        )
        return _records(
            ("message_id", "input", "npc", "team", "model", "provider", "timestamp"), rows
        )

    def label_execution(self, message_id: str, label: str) -> None:
        """Attach a label to an execution."""
        self.add_label("execution", message_id, label, None)

    def add_label(
        self,
        entity_type: str,
        entity_id: str,
        label: str,
        metadata: Optional[str] = None,
    ) -> None:
        """Attach a label to any entity."""
        self._execute(
            "INSERT INTO labels (entity_type, entity_id, label, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (entity_type, entity_id, label, metadata, _rfc3339_now()),
        )

    def get_labels(
        self, entity_type: Optional[str] = None, label: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Return labels, filtered by entity type and label when given."""
        conditions = []
        params: list[Any] = []
        if entity_type is not None:
            conditions.append("entity_type = ?")
            params.append(entity_type)
        if label is not None:
            conditions.append("label = ?")
            params.append(label)
        sql = "SELECT id, entity_type, entity_id, label, metadata, created_at FROM labels"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        return _records(
            ("id", "entity_type", "entity_id", "label", "metadata", "created_at"),
            self._query(sql, params),
            optional=("metadata",),
        )

    def get_training_data_by_label(self, label: str) -> list[dict[str, Any]]:
        """Return the messages that carry the given label."""
        rows = self._query(
            "SELECT ch.role, ch.content, ch.model, ch.npc FROM conversation_history ch "
            "INNER JOIN labels l ON l.entity_id = ch.message_id WHERE l.label = ?",
            (label,),
        )
        return _records(
            ("role", "content", "model", "npc"), rows, optional=("model", "npc")
        )