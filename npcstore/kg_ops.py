"""Fact and concept operations and graph searches over a knowledge graph."""

from __future__ import annotations

from typing import Any, Optional

from npcstore.knowledge_graph import KgEdge, KgNode, KgNodeType, KnowledgeGraph


def kg_add_fact(
    kg: KnowledgeGraph,
    statement: str,
    source_text: Optional[str] = None,
    fact_type: Optional[str] = None,
) -> KgNode:
    """Add a fact node named by its statement, tagging its type when given."""
    node = kg.add_entity(statement, KgNodeType.FACT, source_text or "")
    if fact_type is not None:
        node.metadata["type"] = fact_type
    return node


def kg_search_facts(kg: KnowledgeGraph, query: str) -> list[KgNode]:
    """Return nodes whose name or content contains the query, ignoring case."""
    return kg.search_facts(query)


def kg_remove_fact(kg: KnowledgeGraph, fact_name: str) -> bool:
    """Remove a fact and its relations; return whether it existed."""
    return kg.remove_entity(fact_name)


def kg_list_concepts(kg: KnowledgeGraph) -> list[KgNode]:
    """Return all concept nodes."""
    return kg.entities_of_type(KgNodeType.CONCEPT)


def kg_get_facts_for_concept(
    kg: KnowledgeGraph, concept_name: str
) -> list[tuple[KgNode, KgEdge]]:
    """Return the facts a concept points to, with the connecting relations."""
    return [
        (node, edge)
        for node, edge in kg.neighbors(concept_name)
        if node.node_type == KgNodeType.FACT
    ]


def kg_add_concept(
    kg: KnowledgeGraph, name: str, content: Optional[str] = None
) -> KgNode:
    """Add a concept node, or update the content of an existing one."""
    return kg.add_entity(name, KgNodeType.CONCEPT, content or "")


def kg_remove_concept(kg: KnowledgeGraph, concept_name: str) -> bool:
    """Remove a concept and its relations; return whether it existed."""
    return kg.remove_entity(concept_name)


def kg_link_fact_to_concept(
    kg: KnowledgeGraph,
    fact_name: str,
    concept_name: str,
    relation: Optional[str] = None,
) -> None:
    """Relate a fact to a concept, by default with 'belongs_to'."""
    kg.add_relation(fact_name, concept_name, relation or "belongs_to", 1.0)


def kg_get_all_facts(kg: KnowledgeGraph) -> list[KgNode]:
    """Return all fact nodes."""
    return kg.entities_of_type(KgNodeType.FACT)


def kg_get_stats(kg: KnowledgeGraph) -> dict[str, int]:
    """Return node, edge and per-type counts and the generation."""
    return {
        "total_nodes": kg.entity_count(),
        "total_edges": kg.relation_count(),
        "facts": len(kg.entities_of_type(KgNodeType.FACT)),
        "concepts": len(kg.entities_of_type(KgNodeType.CONCEPT)),
        "entities": len(kg.entities_of_type(KgNodeType.ENTITY)),
        "generation": kg.generation(),
    }


def kg_link_search(
    kg: KnowledgeGraph, query: str, max_depth: int = 2, max_results: int = 20
) -> list[dict[str, Any]]:
    """Find matching nodes, then follow outgoing relations breadth first.

    At each level the content of the previous level's results is looked up
    as a node name.
    """
    results: list[dict[str, Any]] = []
    visited: set[str] = set()

    for seed in kg.search_facts(query)[:5]:
        if seed.name in visited:
            continue
        visited.add(seed.name)
        results.append(
            {"content": seed.content, "type": "fact", "depth": 0, "score": 1.0}
        )

    for depth in range(1, max_depth + 1):
        current = [r["content"] for r in results if r["depth"] == depth - 1]
        for name in current:
            for neighbor, edge in kg.neighbors(name):
                if neighbor.name in visited or len(results) >= max_results:
                    continue
                visited.add(neighbor.name)
                results.append(
                    {
                        "content": neighbor.content,
                        "type": neighbor.node_type.value,
                        "depth": depth,
                        "score": 1.0 / (depth + 1.0),
                        "link_type": edge.relation,
                    }
                )

    return results[:max_results]


def kg_explore_concept(
    kg: KnowledgeGraph, concept_name: str, max_depth: int = 1
) -> dict[str, Any]:
    """Describe a concept by its facts, related concepts and their facts."""
    neighbors = kg.neighbors(concept_name)
    direct_facts = [n.content for n, _ in neighbors if n.node_type == KgNodeType.FACT]
    related_concepts = [
        n.name for n, _ in neighbors if n.node_type == KgNodeType.CONCEPT
    ]
    result: dict[str, Any] = {
        "concept": concept_name,
        "direct_facts": direct_facts,
        "related_concepts": related_concepts,
    }
    if max_depth > 0:
        result["extended_facts"] = [
            n.content
            for related in related_concepts
            for n, _ in kg.neighbors(related)
            if n.node_type == KgNodeType.FACT and n.content not in direct_facts
        ]
    return result