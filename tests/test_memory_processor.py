import json
import sqlite3

import pytest

from npcstore.memory_processor import (
    Memory,
    MemoryStatus,
    get_pending_memories,
    save_memory,
    set_memory_embedding,
    update_memory_status,
)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    connection.executescript(
        """CREATE TABLE IF NOT EXISTS npc_memories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            npc_name TEXT NOT NULL,
            team_name TEXT,
            content TEXT NOT NULL,
            embedding BLOB,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            updated_at TEXT
        );"""
    )
    yield connection
    connection.close()


def test_save_and_get_pending(conn):
    id1 = save_memory(conn, "sibiji", "Rust is fast")
    id2 = save_memory(conn, "sibiji", "NPC systems are cool")
    assert id1 > 0
    assert id2 > id1

    pending = get_pending_memories(conn)
    assert len(pending) == 2
    assert pending[0].npc_name == "sibiji"
    assert pending[0].content == "Rust is fast"
    assert pending[0].status == MemoryStatus.PENDING
    assert pending[0].embedding is None


def test_approve_reject(conn):
    id1 = save_memory(conn, "alicanto", "fact one")
    id2 = save_memory(conn, "alicanto", "fact two")

    update_memory_status(conn, id1, MemoryStatus.APPROVED)
    update_memory_status(conn, id2, MemoryStatus.REJECTED)

    assert get_pending_memories(conn) == []
    statuses = dict(conn.execute("SELECT id, status FROM npc_memories").fetchall())
    assert statuses == {id1: "approved", id2: "rejected"}


def test_update_sets_updated_at(conn):
    memory_id = save_memory(conn, "x", "y")
    update_memory_status(conn, memory_id, MemoryStatus.APPROVED)
    (updated,) = conn.execute(
        "SELECT updated_at FROM npc_memories WHERE id = ?", (memory_id,)
    ).fetchone()
    assert isinstance(updated, str) and updated


def test_set_embedding(conn):
    memory_id = save_memory(conn, "test", "embedding test")
    emb = [0.1, 0.2, 0.3, 0.4]
    set_memory_embedding(conn, memory_id, emb)

    (blob,) = conn.execute(
        "SELECT embedding FROM npc_memories WHERE id = ?", (memory_id,)
    ).fetchone()
    assert json.loads(blob) == emb


def test_pending_memory_carries_embedding(conn):
    memory_id = save_memory(conn, "test", "with embedding")
    set_memory_embedding(conn, memory_id, [1, 2.5])
    [memory] = get_pending_memories(conn)
    assert isinstance(memory, Memory)
    assert memory.embedding == [1.0, 2.5]


def test_invalid_embedding_blob_is_ignored(conn):
    memory_id = save_memory(conn, "test", "broken")
    conn.execute(
        "UPDATE npc_memories SET embedding = ? WHERE id = ?", (b"not json", memory_id)
    )
    [memory] = get_pending_memories(conn)
    assert memory.embedding is None


def test_nan_embedding_rejected(conn):
    memory_id = save_memory(conn, "test", "nan")
    with pytest.raises(ValueError):
        set_memory_embedding(conn, memory_id, [float("nan")])


@pytest.mark.parametrize(
    "text, expected",
    [
        ("approved", MemoryStatus.APPROVED),
        ("rejected", MemoryStatus.REJECTED),
        ("pending", MemoryStatus.PENDING),
        ("whatever", MemoryStatus.PENDING),
    ],
)
def test_status_parse(text, expected):
    assert MemoryStatus.parse(text) is expected


def test_status_round_trip():
    for status in MemoryStatus:
        assert MemoryStatus.parse(status.value) is status