"""SQLite-backed storage for conversations, commands and attachments."""

from __future__ import annotations

import os
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

_SCHEMA = """
CREATE TABLE IF NOT EXISTS command_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp VARCHAR(50),
    command TEXT,
    subcommands TEXT,
    output TEXT,
    location TEXT
);

CREATE TABLE IF NOT EXISTS conversation_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id VARCHAR(50) UNIQUE NOT NULL,
    timestamp VARCHAR(50),
    role VARCHAR(20),
    content TEXT,
    conversation_id VARCHAR(100),
    directory_path TEXT,
    model VARCHAR(100),
    provider VARCHAR(100),
    npc VARCHAR(100),
    team VARCHAR(100),
    reasoning_content TEXT,
    tool_calls TEXT,
    tool_results TEXT,
    parent_message_id VARCHAR(50),
    device_id VARCHAR(255),
    device_name VARCHAR(255),
    params TEXT,
    input_tokens INTEGER,
    output_tokens INTEGER,
    cost VARCHAR(50)
);

CREATE TABLE IF NOT EXISTS jinx_executions (
    message_id VARCHAR(50) PRIMARY KEY,
    jinx_name VARCHAR(100),
    input TEXT,
    timestamp VARCHAR(50),
    npc VARCHAR(100),
    team VARCHAR(100),
    conversation_id VARCHAR(100),
    output TEXT,
    status VARCHAR(50),
    error_message TEXT,
    duration_ms INTEGER
);

CREATE TABLE IF NOT EXISTS npc_executions (
    message_id VARCHAR(50) PRIMARY KEY,
    input TEXT,
    timestamp VARCHAR(50),
    npc VARCHAR(100),
    team VARCHAR(100),
    conversation_id VARCHAR(100),
    model VARCHAR(100),
    provider VARCHAR(100)
);

CREATE TABLE IF NOT EXISTS message_attachments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id VARCHAR(50) NOT NULL,
    attachment_name VARCHAR(255),
    attachment_type VARCHAR(100),
    attachment_data BLOB,
    attachment_size INTEGER,
    upload_timestamp VARCHAR(50),
    file_path TEXT
);

CREATE TABLE IF NOT EXISTS compiled_npcs (
    name TEXT PRIMARY KEY,
    source_path TEXT,
    compiled_content TEXT,
    compiled_at TEXT
);

CREATE TABLE IF NOT EXISTS memory_lifecycle (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id VARCHAR(50) NOT NULL,
    conversation_id VARCHAR(100) NOT NULL,
    npc VARCHAR(100) NOT NULL,
    team VARCHAR(100) NOT NULL,
    directory_path TEXT NOT NULL,
    timestamp VARCHAR(50) NOT NULL,
    initial_memory TEXT NOT NULL,
    final_memory TEXT,
    status VARCHAR(50) NOT NULL,
    model VARCHAR(100),
    provider VARCHAR(100),
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type VARCHAR(50) NOT NULL,
    entity_id VARCHAR(100) NOT NULL,
    label VARCHAR(100) NOT NULL,
    metadata TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS npc_memories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    npc_name TEXT NOT NULL,
    team_name TEXT,
    content TEXT NOT NULL,
    embedding BLOB,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS knowledge_graphs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    npc_name TEXT,
    team_name TEXT,
    kg_data TEXT NOT NULL,
    generation INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_conv_hist_conv_id ON conversation_history(conversation_id);
CREATE INDEX IF NOT EXISTS idx_conv_hist_role ON conversation_history(role);
CREATE INDEX IF NOT EXISTS idx_conv_hist_npc ON conversation_history(npc);
CREATE INDEX IF NOT EXISTS idx_conv_hist_msg_id ON conversation_history(message_id);
CREATE INDEX IF NOT EXISTS idx_jinx_exec_name ON jinx_executions(jinx_name);
CREATE INDEX IF NOT EXISTS idx_npc_memories_npc ON npc_memories(npc_name);
CREATE INDEX IF NOT EXISTS idx_npc_memories_status ON npc_memories(status);
CREATE INDEX IF NOT EXISTS idx_kg_npc ON knowledge_graphs(npc_name);
"""

_MESSAGE_COLUMNS = (
    "message_id, role, content, model, provider, npc, team, "
    "tool_calls, input_tokens, output_tokens, cost"
)
_COMMAND_COLUMNS = "command, output, location, timestamp"
_COMMAND_KEYS = ("command", "output", "location", "timestamp")


def generate_message_id() -> str:
    """Return a fresh random message identifier."""
    return str(uuid.uuid4())


def start_new_conversation() -> str:
    """Return a fresh random conversation identifier."""
    return str(uuid.uuid4())


def _sql_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _rfc3339_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ConversationMessage:
    """One stored message of a conversation."""

    message_id: str
    role: str
    content: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    npc: Optional[str] = None
    team: Optional[str] = None
    tool_calls: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cost: Optional[str] = None

    @classmethod
    def _from_row(cls, row: Sequence[Any]) -> Optional["ConversationMessage"]:
        if row[0] is None or row[1] is None:
            return None
        return cls(*row)


def _messages(rows: Iterable[Sequence[Any]]) -> list[ConversationMessage]:
    return [m for m in map(ConversationMessage._from_row, rows) if m is not None]


def _commands(rows: Iterable[Sequence[Any]]) -> list[dict[str, str]]:
    return [
        dict(zip(_COMMAND_KEYS, row))
        for row in rows
        if all(value is not None for value in row)
    ]


class HistoryStore:
    """A conversation and command history kept in an SQLite database."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        self.db_path = os.fspath(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    @classmethod
    def in_memory(cls) -> "HistoryStore":
        """Open a store that lives only in memory."""
        return cls(":memory:")

    def __enter__(self) -> "HistoryStore":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        cursor = self._conn.execute(sql, params)
        self._conn.commit()
        return cursor

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        return self._conn.execute(sql, params).fetchall()

    def _query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        return self._conn.execute(sql, params).fetchone()

    def save_conversation_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        directory_path: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        npc: Optional[str] = None,
        team: Optional[str] = None,
        tool_calls_json: Optional[str] = None,
        tool_results_json: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> str:
        """Store a message and return its new message id."""
        message_id = generate_message_id()
        cost_text = None if cost is None else f"{cost:.6f}"
        self._execute(
            "INSERT INTO conversation_history "
            "(message_id, timestamp, role, content, conversation_id, directory_path, "
            "model, provider, npc, team, tool_calls, tool_results, "
            "parent_message_id, input_tokens, output_tokens, cost) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                message_id,
                _sql_timestamp(),
                role,
                content,
                conversation_id,
                directory_path,
                model,
                provider,
                npc,
                team,
                tool_calls_json,
                tool_results_json,
                parent_message_id,
                input_tokens,
                output_tokens,
                cost_text,
            ),
        )
        return message_id

    def load_conversation_messages(self, conversation_id: str) -> list[ConversationMessage]:
        """Return the messages of a conversation in the order they were saved."""
        return _messages(
            self._query(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_history "
                "WHERE conversation_id = ? ORDER BY id ASC",
                (conversation_id,),
            )
        )

    def get_last_message_id(self, conversation_id: str) -> Optional[str]:
        """Return the id of the newest message in a conversation, if any."""
        row = self._query_one(
            "SELECT message_id FROM conversation_history "
            "WHERE conversation_id = ? ORDER BY id DESC LIMIT 1",
            (conversation_id,),
        )
        return None if row is None else row[0]

    def total_usage(self) -> tuple[int, int]:
        """Return the summed input and output tokens over all messages."""
        row = self._query_one(
            "SELECT COALESCE(SUM(input_tokens), 0), COALESCE(SUM(output_tokens), 0) "
            "FROM conversation_history"
        )
        return int(row[0]), int(row[1])

    def retrieve_last_conversation(self) -> Optional[str]:
        """Return the conversation id of the most recent message, if any."""
        row = self._query_one(
            "SELECT conversation_id FROM conversation_history "
            "ORDER BY timestamp DESC LIMIT 1"
        )
        return None if row is None else row[0]

    def add_command(self, command: str, subcommands: str, output: str, location: str) -> None:
        """Record a shell command and its output."""
        self._execute(
            "INSERT INTO command_history (timestamp, command, subcommands, output, location) "
            "VALUES (?, ?, ?, ?, ?)",
            (_sql_timestamp(), command, subcommands, output, location),
        )

    def add_conversation(
        self,
        conversation_id: str,
        role: str,
        content: str,
        npc: Optional[str] = None,
        team: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> str:
        """Store a message under the current working directory."""
        try:
            directory = os.getcwd()
        except OSError:
            directory = ""
        return self.save_conversation_message(
            conversation_id, role, content, directory, model, provider, npc, team
        )

    def get_message_by_id(self, message_id: str) -> Optional[ConversationMessage]:
        """Return the message with the given id, if it exists."""
        row = self._query_one(
            f"SELECT {_MESSAGE_COLUMNS} FROM conversation_history WHERE message_id = ?",
            (message_id,),
        )
        return None if row is None else ConversationMessage._from_row(row)

    def get_messages_by_npc(self, npc: str, n_last: int) -> list[ConversationMessage]:
        """Return up to n_last messages of an NPC, newest first."""
        return _messages(
            self._query(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_history "
                "WHERE npc = ? ORDER BY id DESC LIMIT ?",
                (npc, n_last),
            )
        )

    def get_messages_by_team(self, team: str, n_last: int) -> list[ConversationMessage]:
        """Return up to n_last messages of a team, newest first."""
        return _messages(
            self._query(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_history "
                "WHERE team = ? ORDER BY id DESC LIMIT ?",
                (team, n_last),
            )
        )

    def get_most_recent_conversation_id(self) -> Optional[str]:
        """Return the conversation id of the most recent message, if any."""
        return self.retrieve_last_conversation()

    def get_last_conversation(self, conversation_id: str) -> list[ConversationMessage]:
        """Return all messages of the given conversation."""
        return self.load_conversation_messages(conversation_id)

    def get_conversations_by_id(self, conversation_id: str) -> list[ConversationMessage]:
        """Return all messages of the given conversation."""
        return self.load_conversation_messages(conversation_id)

    def get_last_command(self) -> Optional[dict[str, str]]:
        """Return the most recently recorded command, if any."""
        row = self._query_one(
            f"SELECT {_COMMAND_COLUMNS} FROM command_history ORDER BY id DESC LIMIT 1"
        )
        return None if row is None else dict(zip(_COMMAND_KEYS, row))

    def search_commands(self, search_term: str) -> list[dict[str, str]]:
        """Return up to 100 commands containing the term, newest first."""
        return _commands(
            self._query(
                f"SELECT {_COMMAND_COLUMNS} FROM command_history "
                "WHERE command LIKE ? ORDER BY id DESC LIMIT 100",
                (f"%{search_term}%",),
            )
        )

    def search_conversations(self, search_term: str) -> list[ConversationMessage]:
        """Return up to 100 messages whose content contains the term, newest first."""
        return _messages(
            self._query(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_history "
                "WHERE content LIKE ? ORDER BY id DESC LIMIT 100",
                (f"%{search_term}%",),
            )
        )

    def get_all_commands(self, limit: int) -> list[dict[str, str]]:
        """Return up to limit commands, newest first."""
        return _commands(
            self._query(
                f"SELECT {_COMMAND_COLUMNS} FROM command_history ORDER BY id DESC LIMIT ?",
                (limit,),
            )
        )

    def delete_message(self, conversation_id: str, message_id: str) -> None:
        """Delete one message of a conversation."""
        self._execute(
            "DELETE FROM conversation_history WHERE conversation_id = ? AND message_id = ?",
            (conversation_id, message_id),
        )

    def save_attachment_to_message(
        self, message_id: str, attachment_type: str, data: bytes, filename: str
    ) -> None:
        """Attach binary data to a message."""
        self._execute(
            "INSERT OR IGNORE INTO message_attachments "
            "(message_id, attachment_type, attachment_data, attachment_name, upload_timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (message_id, attachment_type, bytes(data), filename, _rfc3339_now()),
        )

    def get_message_attachments(self, message_id: str) -> list[dict[str, Any]]:
        """Return descriptions of the attachments of a message."""
        rows = self._query(
            "SELECT id, attachment_name, attachment_type, attachment_size, file_path "
            "FROM message_attachments WHERE message_id = ?",
            (message_id,),
        )
        return [
            dict(zip(("id", "name", "type", "size", "file_path"), row)) for row in rows
        ]

    def get_available_tables(self) -> list[str]:
        """Return the names of all tables in the database, sorted."""
        return [
            row[0]
            for row in self._query(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
        ]


def normalize_path_for_db(path: str) -> str:
    """Expand '~' and resolve the path when it exists."""
    expanded = os.path.expanduser(path)
    try:
        return str(Path(expanded).resolve(strict=True))
    except (OSError, RuntimeError):
        return expanded


def flush_messages(n: int, messages: Sequence[Mapping[str, str]]) -> dict[str, Any]:
    """Keep only the last n messages and report how many were dropped."""
    kept = list(messages[len(messages) - n:]) if len(messages) > n else list(messages)
    return {"messages": kept, "flushed": max(len(messages) - n, 0)}


def format_memory_context(memory_examples: Sequence[str]) -> str:
    """Render remembered items as a bulleted prompt section."""
    if not memory_examples:
        return ""
    lines = "".join(f"- {memory}\n" for memory in memory_examples)
    return "Here are some things I remember about you:\n" + lines