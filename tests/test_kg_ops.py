import pytest

from npcstore.knowledge_graph import KgNodeType, KnowledgeGraph
from npcstore.kg_ops import (
    kg_add_concept,
    kg_add_fact,
    kg_explore_concept,
    kg_get_all_facts,
    kg_get_facts_for_concept,
    kg_get_stats,
    kg_link_fact_to_concept,
    kg_link_search,
    kg_list_concepts,
    kg_remove_concept,
    kg_remove_fact,
    kg_search_facts,
)


@pytest.fixture
def kg():
    return KnowledgeGraph()


def test_add_fact_sets_type_and_content(kg):
    node = kg_add_fact(kg, "water boils", "physics notes", "observation")
    assert node.node_type == KgNodeType.FACT
    assert node.content == "physics notes"
    assert node.metadata == {"type": "observation"}
    assert kg.get_entity("water boils") is node


def test_add_fact_without_source_has_empty_content(kg):
    node = kg_add_fact(kg, "sky is blue")
    assert node.content == ""
    assert node.metadata == {}


def test_search_facts_is_case_insensitive(kg):
    kg_add_fact(kg, "Cats Purr", "felines")
    kg_add_concept(kg, "dogs", "canines")
    found = kg_search_facts(kg, "cats")
    assert [n.name for n in found] == ["Cats Purr"]
    assert [n.name for n in kg_search_facts(kg, "CANINE")] == ["dogs"]


def test_remove_fact_and_concept(kg):
    kg_add_fact(kg, "f1")
    kg_add_concept(kg, "c1")
    kg_link_fact_to_concept(kg, "f1", "c1")
    assert kg.relation_count() == 1
    assert kg_remove_fact(kg, "f1") is True
    assert kg_remove_fact(kg, "f1") is False
    assert kg.relation_count() == 0
    assert kg_remove_concept(kg, "c1") is True
    assert kg_remove_concept(kg, "c1") is False
    assert kg.entity_count() == 0


def test_list_concepts_and_all_facts(kg):
    kg_add_concept(kg, "c1")
    kg_add_concept(kg, "c2")
    kg_add_fact(kg, "f1")
    assert sorted(n.name for n in kg_list_concepts(kg)) == ["c1", "c2"]
    assert [n.name for n in kg_get_all_facts(kg)] == ["f1"]


def test_link_default_relation(kg):
    kg_add_fact(kg, "f1")
    kg_add_concept(kg, "c1")
    kg_link_fact_to_concept(kg, "f1", "c1")
    [(target, edge)] = kg.neighbors("f1")
    assert target.name == "c1"
    assert edge.relation == "belongs_to"
    assert edge.weight == 1.0


def test_link_ignored_for_missing_nodes(kg):
    kg_add_fact(kg, "f1")
    kg_link_fact_to_concept(kg, "f1", "absent", "about")
    assert kg.relation_count() == 0


def test_facts_for_concept_filters_by_type(kg):
    kg_add_concept(kg, "c1")
    kg_add_concept(kg, "c2")
    kg_add_fact(kg, "f1")
    kg.add_relation("c1", "f1", "has", 1.0)
    kg.add_relation("c1", "c2", "near", 1.0)
    pairs = kg_get_facts_for_concept(kg, "c1")
    assert [(n.name, e.relation) for n, e in pairs] == [("f1", "has")]


def test_stats(kg):
    kg_add_fact(kg, "f1")
    kg_add_fact(kg, "f2")
    kg_add_concept(kg, "c1")
    kg.add_entity("e1", KgNodeType.ENTITY, "")
    kg_link_fact_to_concept(kg, "f1", "c1")
    kg.increment_generation()
    assert kg_get_stats(kg) == {
        "total_nodes": 4,
        "total_edges": 1,
        "facts": 2,
        "concepts": 1,
        "entities": 1,
        "generation": 1,
    }


def test_link_search_follows_relations(kg):
    kg_add_fact(kg, "alpha", "alpha")
    kg_add_concept(kg, "beta", "beta")
    kg_add_fact(kg, "gamma", "gamma")
    kg.add_relation("alpha", "beta", "belongs_to", 1.0)
    kg.add_relation("beta", "gamma", "related_to", 1.0)

    results = kg_link_search(kg, "alpha", 2, 10)
    assert [r["content"] for r in results] == ["alpha", "beta", "gamma"]
    assert [r["depth"] for r in results] == [0, 1, 2]
    assert results[0]["type"] == "fact"
    assert results[0]["score"] == 1.0
    assert results[1]["type"] == "Concept"
    assert results[1]["link_type"] == "belongs_to"
    assert results[2]["link_type"] == "related_to"
    assert results[0]["score"] > results[1]["score"] > results[2]["score"]


def test_link_search_respects_depth_and_limit(kg):
    kg_add_fact(kg, "alpha", "alpha")
    kg_add_concept(kg, "beta", "beta")
    kg_add_fact(kg, "gamma", "gamma")
    kg.add_relation("alpha", "beta", "belongs_to", 1.0)
    kg.add_relation("beta", "gamma", "related_to", 1.0)
    assert len(kg_link_search(kg, "alpha", 0, 10)) == 1
    assert len(kg_link_search(kg, "alpha", 1, 10)) == 2
    assert len(kg_link_search(kg, "alpha", 2, 1)) == 1


def test_link_search_no_match(kg):
    kg_add_fact(kg, "alpha", "alpha")
    assert kg_link_search(kg, "zzz", 2, 10) == []


def test_link_search_seeds_capped_at_five(kg):
    for i in range(8):
        kg_add_fact(kg, f"item {i}", f"item {i}")
    results = kg_link_search(kg, "item", 1, 20)
    assert len(results) == 5
    assert all(r["depth"] == 0 for r in results)


def test_explore_concept(kg):
    kg_add_concept(kg, "c1")
    kg_add_concept(kg, "c2")
    kg_add_fact(kg, "f1", "first")
    kg_add_fact(kg, "f2", "second")
    kg.add_relation("c1", "f1", "has", 1.0)
    kg.add_relation("c1", "c2", "near", 1.0)
    kg.add_relation("c2", "f2", "has", 1.0)
    kg.add_relation("c2", "f1", "has", 1.0)

    result = kg_explore_concept(kg, "c1", 1)
    assert result["concept"] == "c1"
    assert result["direct_facts"] == ["first"]
    assert result["related_concepts"] == ["c2"]
    assert result["extended_facts"] == ["second"]


def test_explore_concept_depth_zero_has_no_extended(kg):
    kg_add_concept(kg, "c1")
    result = kg_explore_concept(kg, "c1", 0)
    assert "extended_facts" not in result
    assert result["direct_facts"] == []
    assert result["related_concepts"] == []