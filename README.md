# npcstore

Persistence and memory utilities for NPC-style language-model agents, built
on the standard library's `sqlite3` with no third-party dependencies.

## What it provides

- **Conversation history** (`npcstore.history_base`, `npcstore.command_history`):
  a SQLite store for messages, shell commands, attachments, jinx and NPC
  executions, labels, NPC versions and a memory lifecycle (pending, approved,
  human-approved, human-edited).
- **Knowledge graph** (`npcstore.knowledge_graph`, `npcstore.kg_ops`): a directed
  graph of facts, concepts, entities and memories with JSON round-tripping,
  keyword search, linked-neighbour search and concept exploration. It can also
  read graphs out of an LLM's JSON reply.
- **Memory processing** (`npcstore.memory_processor`): save memories, list the
  pending ones, approve or reject them and attach embeddings.
- **Keyword memory search** (`npcstore.search`).
- **Multi-model result helpers** (`npcstore.npc_array`): majority voting across
  model answers and summary statistics.

## Installation

```
pip install npcstore
```

## Quick start

```python
from npcstore.command_history import CommandHistory
from npcstore.history_base import start_new_conversation

with CommandHistory.in_memory() as history:
    conv = start_new_conversation()
    history.save_conversation_message(
        conv, "user", "hello", "/tmp",
        "some-model", "ollama", "sibiji", "npc_team",
        None, None, None, 10, None, None,
    )
    for message in history.load_conversation_messages(conv):
        print(message.role, message.content)
```

### Knowledge graph

```python
from npcstore.knowledge_graph import KnowledgeGraph, KgNodeType
from npcstore.kg_ops import kg_add_concept, kg_add_fact, kg_link_fact_to_concept, kg_get_stats

kg = KnowledgeGraph()
kg_add_concept(kg, "languages", None)
kg_add_fact(kg, "Python is dynamically typed", None, None)
kg_link_fact_to_concept(kg, "Python is dynamically typed", "languages", None)

text = kg.to_json()
restored = KnowledgeGraph.from_json(text)
print(kg_get_stats(restored))
```

### Voting over model answers

```python
from npcstore.npc_array import InferResult, ensemble_vote, matrix_stats

results = [
    InferResult("a", "p", "Yes", 10, 0.0, 100),
    InferResult("b", "p", "yes ", 12, 0.0, 120),
    InferResult("c", "p", "No", 8, 0.0, 90),
]
print(ensemble_vote(results))   # "Yes"
print(matrix_stats(results).avg_latency_ms)
```

## Running the tests

```
pip install -e ".[test]"
pytest
```