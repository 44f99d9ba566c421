"""Tests for graph queries and exports."""

import json

import pytest
from pydantic import ValidationError

from pharma_kg.errors import EntityNotFoundError, GraphNotReadyError, UnsupportedFormatError
from pharma_kg.graph import export_graph, run_query
from pharma_kg.graph.export import cypher_label, cypher_value
from pharma_kg.models import Entity, GraphQuery, GraphStatus, KnowledgeGraph, Relationship


def entity(eid: str, etype: str, name: str) -> Entity:
    return Entity(id=eid, type=etype, properties={"name": name}, sources=["s1"])


def rel(source: str, target: str, rtype: str) -> Relationship:
    return Relationship(id=f"rel_{source}_{target}", source=source, target=target, type=rtype, sources=["s1"])


@pytest.fixture
def graph():
    g = KnowledgeGraph(id="kg_test", status=GraphStatus.COMPLETED, sources=["s1"])
    for e in [
        entity("clinical_trial_nct1", "clinical_trial", "NCT1"),
        entity("clinical_trial_nct2", "clinical_trial", "NCT2"),
        entity("company_acme", "company", "Acme"),
        entity("intervention_acmeumab", "intervention", "Acmeumab"),
        entity("drug_acmeumab", "drug", "Acmeumab"),
    ]:
        g.entities[e.id] = e
    for r in [
        rel("clinical_trial_nct1", "company_acme", "SPONSORED_BY"),
        rel("clinical_trial_nct2", "company_acme", "SPONSORED_BY"),
        rel("clinical_trial_nct1", "intervention_acmeumab", "TESTS"),
        rel("intervention_acmeumab", "drug_acmeumab", "CORRESPONDS_TO"),
    ]:
        g.relationships[r.id] = r
    g.metadata.entity_count = len(g.entities)
    g.metadata.relationship_count = len(g.relationships)
    return g


class TestQuery:
    def test_entities_of_type(self, graph):
        result = run_query(graph, {"kind": "entities", "entity_type": "clinical_trial"})
        assert [r["id"] for r in result.results] == ["clinical_trial_nct1", "clinical_trial_nct2"]
        assert result.metadata["graph_id"] == "kg_test"
        assert result.metadata["count"] == 2

    def test_limit(self, graph):
        result = run_query(graph, GraphQuery(entity_type="clinical_trial", limit=1))
        assert len(result.results) == 1

    def test_neighbors_one_hop(self, graph):
        result = run_query(graph, {"kind": "neighbors", "entity_id": "company_acme"})
        assert [r["id"] for r in result.results] == ["clinical_trial_nct1", "clinical_trial_nct2"]
        assert all(r["distance"] == 1 for r in result.results)

    def test_neighbors_depth_bound(self, graph):
        result = run_query(graph, {"kind": "neighbors", "entity_id": "company_acme", "depth": 3})
        distances = {r["id"]: r["distance"] for r in result.results}
        assert distances == {
            "clinical_trial_nct1": 1,
            "clinical_trial_nct2": 1,
            "intervention_acmeumab": 2,
            "drug_acmeumab": 3,
        }

    def test_direction_and_relationship_filter(self, graph):
        out = run_query(graph, {"kind": "neighbors", "entity_id": "clinical_trial_nct1", "direction": "out"})
        assert {r["id"] for r in out.results} == {"company_acme", "intervention_acmeumab"}

        incoming = run_query(graph, {"kind": "neighbors", "entity_id": "clinical_trial_nct1", "direction": "in"})
        assert incoming.results == []

        tests_only = run_query(
            graph,
            {"kind": "neighbors", "entity_id": "clinical_trial_nct1", "relationship_types": ["TESTS"], "depth": 2},
        )
        assert [r["id"] for r in tests_only.results] == ["intervention_acmeumab"]

    def test_subgraph(self, graph):
        result = run_query(graph, {"kind": "subgraph", "entity_id": "intervention_acmeumab"})
        [sub] = result.results
        assert {n["id"] for n in sub["nodes"]} == {"intervention_acmeumab", "clinical_trial_nct1", "drug_acmeumab"}
        assert {e["type"] for e in sub["edges"]} == {"TESTS", "CORRESPONDS_TO"}

    def test_unknown_entity(self, graph):
        with pytest.raises(EntityNotFoundError):
            run_query(graph, {"kind": "neighbors", "entity_id": "company_nobody"})

    def test_invalid_queries(self, graph):
        with pytest.raises(ValidationError):
            run_query(graph, {"kind": "neighbors"})
        with pytest.raises(ValidationError):
            run_query(graph, {"kind": "entities"})
        with pytest.raises(ValidationError):
            run_query(graph, {"kind": "neighbors", "entity_id": "company_acme", "depth": 6})

    def test_requires_completed_graph(self, graph):
        graph.status = GraphStatus.BUILDING
        with pytest.raises(GraphNotReadyError):
            run_query(graph, {"kind": "entities", "entity_type": "company"})
        with pytest.raises(GraphNotReadyError):
            export_graph(graph, "json")


class TestExport:
    def test_json(self, graph):
        data = json.loads(export_graph(graph, "json"))
        assert len(data["nodes"]) == 5
        assert len(data["edges"]) == 4
        assert data["metadata"]["entity_count"] == 5
        acme = next(n for n in data["nodes"] if n["id"] == "company_acme")
        assert acme["label"] == "Acme"
        assert acme["sources"] == ["s1"]

    def test_graphlib(self, graph):
        data = json.loads(export_graph(graph, "graphlib"))
        assert data["options"] == {"directed": True, "multigraph": False, "compound": False}
        assert {"v", "value"} <= set(data["nodes"][0])
        edge = next(e for e in data["edges"] if e["value"]["type"] == "TESTS")
        assert (edge["v"], edge["w"]) == ("clinical_trial_nct1", "intervention_acmeumab")

    def test_cypher(self, graph):
        text = export_graph(graph, "cypher").decode("utf-8")
        assert "MERGE (n:ClinicalTrial {id: 'clinical_trial_nct1'})" in text
        assert "MERGE (a)-[r:SPONSORED_BY {id: 'rel_clinical_trial_nct1_company_acme'}]->(b)" in text
        assert text.count("MERGE") == 9

    def test_cypher_literals(self):
        assert cypher_label("clinical_trial") == "ClinicalTrial"
        assert cypher_value("O'Brien") == "'O\\'Brien'"
        assert cypher_value([1, True, None]) == "[1, true, null]"
        assert cypher_value({"a": 1}) == "'{\"a\": 1}'"
        assert cypher_value(float("nan")) == "null"
        assert cypher_value([1.5, float("inf"), float("-inf")]) == "[1.5, null, null]"

    def test_unknown_format(self, graph):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            export_graph(graph, "graphml")
        assert isinstance(exc_info.value, ValueError)
