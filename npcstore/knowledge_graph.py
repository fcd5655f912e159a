"""A small directed knowledge graph of named entities and weighted relations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class KgParseError(ValueError):
    """Raised when knowledge-graph data cannot be parsed."""


class KgNodeType(Enum):
    """The kind of a knowledge-graph node."""

    FACT = "Fact"
    CONCEPT = "Concept"
    ENTITY = "Entity"
    MEMORY = "Memory"


@dataclass
class KgNode:
    """A named node of the graph."""

    name: str
    node_type: KgNodeType
    content: str
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    def _to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "node_type": self.node_type.value,
            "content": self.content,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def _from_dict(cls, data: Any) -> "KgNode":
        if not isinstance(data, dict):
            raise KgParseError(f"node must be an object, got {data!r}")
        try:
            node_type = KgNodeType(data["node_type"])
        except KeyError:
            raise KgParseError("node is missing field 'node_type'") from None
        except ValueError:
            raise KgParseError(f"unknown node type {data['node_type']!r}") from None
        return cls(
            name=_require_str(data, "name"),
            node_type=node_type,
            content=_require_str(data, "content"),
            metadata=_require_metadata(data),
            created_at=_require_str(data, "created_at"),
            updated_at=_require_str(data, "updated_at"),
        )


@dataclass
class KgEdge:
    """A weighted, labelled relation between two nodes."""

    relation: str
    weight: float = 1.0
    metadata: dict[str, str] = field(default_factory=dict)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "relation": self.relation,
            "weight": self.weight,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def _from_dict(cls, data: Any) -> "KgEdge":
        if not isinstance(data, dict):
            raise KgParseError(f"edge must be an object, got {data!r}")
        weight = data.get("weight")
        if not _is_number(weight):
            raise KgParseError("edge field 'weight' must be a number")
        return cls(
            relation=_require_str(data, "relation"),
            weight=float(weight),
            metadata=_require_metadata(data),
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise KgParseError(f"field {key!r} must be a string")
    return value


def _require_metadata(data: dict) -> dict[str, str]:
    value = data.get("metadata")
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise KgParseError("field 'metadata' must be an object of strings")
    return dict(value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class KnowledgeGraph:
    """Directed graph of uniquely named nodes joined by weighted relations."""

    def __init__(self) -> None:
        self._nodes: dict[str, KgNode] = {}
        self._edges: list[tuple[str, str, KgEdge]] = []
        self._generation = 0

    def add_entity(self, name: str, node_type: KgNodeType, content: str) -> KgNode:
        """Add a node, or update the content of the node with that name."""
        now = _now()
        node = self._nodes.get(name)
        if node is not None:
            node.content = content
            node.updated_at = now
            return node
        node = KgNode(name, node_type, content, {}, now, now)
        self._nodes[name] = node
        return node

    def get_entity(self, name: str) -> Optional[KgNode]:
        """Return the node with the given name, if any."""
        return self._nodes.get(name)

    def add_relation(
        self, source: str, target: str, relation: str, weight: float = 1.0
    ) -> None:
        """Add a relation; ignored unless both nodes exist."""
        if source in self._nodes and target in self._nodes:
            self._edges.append((source, target, KgEdge(relation, weight)))

    def remove_entity(self, name: str) -> bool:
        """Remove a node and its relations; return whether it existed."""
        if name not in self._nodes:
            return False
        del self._nodes[name]
        self._edges = [e for e in self._edges if name not in (e[0], e[1])]
        return True

    def entities_of_type(self, node_type: KgNodeType) -> list[KgNode]:
        """Return all nodes of the given type."""
        return [n for n in self._nodes.values() if n.node_type == node_type]

    def neighbors(self, name: str) -> list[tuple[KgNode, KgEdge]]:
        """Return outgoing (target, edge) pairs, most recently added first."""
        if name not in self._nodes:
            return []
        return [
            (self._nodes[target], edge)
            for source, target, edge in reversed(self._edges)
            if source == name
        ]

    def entity_count(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def relation_count(self) -> int:
        """Return the number of relations."""
        return len(self._edges)

    def to_json(self) -> str:
        """Serialize the graph to a compact JSON string."""
        data = {
            "nodes": [n._to_dict() for n in self._nodes.values()],
            "edges": [
                {"from": s, "to": t, "edge": e._to_dict()} for s, t, e in self._edges
            ],
            "generation": self._generation,
        }
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "KnowledgeGraph":
        """Build a graph from JSON produced by to_json."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise KgParseError(str(exc)) from exc
        if not isinstance(data, dict):
            raise KgParseError("knowledge graph must be a JSON object")
        nodes = data.get("nodes")
        edges = data.get("edges")
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise KgParseError("knowledge graph needs 'nodes' and 'edges' lists")
        generation = data.get("generation", 0)
        if not isinstance(generation, int) or isinstance(generation, bool) or generation < 0:
            raise KgParseError("field 'generation' must be a non-negative integer")

        kg = cls()
        kg._generation = generation
        for raw in nodes:
            node = KgNode._from_dict(raw)
            kg._nodes[node.name] = node
        for raw in edges:
            if not isinstance(raw, dict):
                raise KgParseError(f"edge entry must be an object, got {raw!r}")
            source = _require_str(raw, "from")
            target = _require_str(raw, "to")
            edge = KgEdge._from_dict(raw.get("edge"))
            if source in kg._nodes and target in kg._nodes:
                kg._edges.append((source, target, edge))
        return kg

    def generation(self) -> int:
        """Return how many times the graph has evolved."""
        return self._generation

    def increment_generation(self) -> None:
        """Advance the generation counter by one."""
        self._generation += 1

    def search_facts(self, query: str) -> list[KgNode]:
        """Return nodes whose name or content contains the query, ignoring case."""
        q = query.lower()
        return [
            n
            for n in self._nodes.values()
            if q in n.name.lower() or q in n.content.lower()
        ]


def extract_json_from_response(response: str) -> str:
    """Pull the JSON part out of a model response, fenced or bare."""
    trimmed = response.strip()

    for fence in ("```json", "```"):
        start = trimmed.find(fence)
        if start != -1:
            after = trimmed[start + len(fence):]
            end = after.find("```")
            if end != -1:
                return after[:end].strip()

    start = trimmed.find("{")
    if start != -1:
        end = trimmed.rfind("}")
        if end > start:
            return trimmed[start:end + 1]

    return trimmed


_TYPE_NAMES = {
    "Fact": KgNodeType.FACT,
    "Concept": KgNodeType.CONCEPT,
    "Memory": KgNodeType.MEMORY,
}


def _str_field(obj: Any, key: str, default: str) -> str:
    if isinstance(obj, dict):
        value = obj.get(key)
        if isinstance(value, str):
            return value
    return default


def parse_kg_from_llm_response(response: str) -> KnowledgeGraph:
    """Build a graph from a model's entity and relationship extraction."""
    json_text = extract_json_from_response(response)
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise KgParseError(
            f"Failed to parse KG extraction response as JSON: {exc}. "
            f"Response was: {response}"
        ) from exc

    kg = KnowledgeGraph()
    if not isinstance(parsed, dict):
        return kg

    entities = parsed.get("entities")
    if isinstance(entities, list):
        for entity in entities:
            name = _str_field(entity, "name", "unknown")
            node_type = _TYPE_NAMES.get(
                _str_field(entity, "type", "Entity"), KgNodeType.ENTITY
            )
            kg.add_entity(name, node_type, _str_field(entity, "content", ""))

    relationships = parsed.get("relationships")
    if isinstance(relationships, list):
        for rel in relationships:
            source = _str_field(rel, "from", "")
            target = _str_field(rel, "to", "")
            relation = _str_field(rel, "relation", "related_to")
            weight = rel.get("weight") if isinstance(rel, dict) else None
            weight = float(weight) if _is_number(weight) else 1.0
            if source and target:
                kg.add_relation(source, target, relation, weight)

    return kg