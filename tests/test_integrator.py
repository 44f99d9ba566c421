"""Tests for knowledge graph construction and merge rules."""

import pytest

from pharma_kg.agents import Agent, AgentResult, default_agents
from pharma_kg.errors import PersistenceError
from pharma_kg.events import GraphConstructionCompleted, GraphConstructionFailed, GraphConstructionStarted
from pharma_kg.graph import GraphBuilder, GraphStore, MergeStrategy
from pharma_kg.graph.merge import merge_entity, merge_properties, merge_relationship
from pharma_kg.models import Entity, GraphStatus, KnowledgeGraph, Relationship


class ExplodingAgent(Agent):
    agent_id = "exploding"
    name = "Exploding"
    data_types = ("all",)

    def run(self, records, source):
        raise RuntimeError("boom")


@pytest.fixture
def builder(registry, config):
    return GraphBuilder(registry, GraphStore(config), config=config)


class TestMergeRules:
    def test_strategies(self):
        old = {"name": "Acme", "ticker": "ACM", "confidence": 0.9}
        new = {"name": "ACME", "revenue": 10, "confidence": 0.5}
        assert merge_properties(old, new, MergeStrategy.OVERWRITE)["name"] == "ACME"
        kept = merge_properties(old, new, MergeStrategy.KEEP_FIRST)
        assert kept["name"] == "Acme"
        assert kept["revenue"] == 10
        best = merge_properties(old, new, MergeStrategy.KEEP_HIGHEST_CONFIDENCE)
        assert best["name"] == "Acme"
        assert best["confidence"] == 0.9
        assert best["revenue"] == 10

    def test_entity_sources_are_a_set(self):
        graph = KnowledgeGraph(id="g")
        entity = Entity(id="company_acme", type="company", properties={"name": "Acme"})
        merge_entity(graph, entity, "s1")
        merge_entity(graph, entity, "s1")
        merge_entity(graph, entity, "s2")
        assert graph.entities["company_acme"].sources == ["s1", "s2"]

    def test_relationship_merge_is_idempotent(self):
        graph = KnowledgeGraph(id="g")
        rel = Relationship(id="rel_a_b", source="a", target="b", type="TESTS", properties={"w": 1})
        merge_relationship(graph, rel, "s1")
        changed = rel.model_copy(update={"properties": {"w": 2}})
        merge_relationship(graph, changed, "s1")
        merge_relationship(graph, changed, "s2")
        assert len(graph.relationships) == 1
        assert graph.relationships["rel_a_b"].properties == {"w": 1}
        assert graph.relationships["rel_a_b"].sources == ["s1", "s2"]

    def test_merge_copies_input(self):
        graph = KnowledgeGraph(id="g")
        entity = Entity(id="drug_x", type="drug", properties={"name": "X"})
        merge_entity(graph, entity, "s1")
        entity.properties["name"] = "changed"
        assert graph.entities["drug_x"].properties["name"] == "X"


class TestBuild:
    def test_acme_scenario(self, registry, builder, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials", "type": "file"})

        graph = builder.build(["ct1"])

        assert graph.status is GraphStatus.COMPLETED
        companies = graph.entities_of_type("company")
        assert [c.id for c in companies] == ["company_acme_pharma"]
        sponsored = [r for r in graph.relationships.values() if r.type == "SPONSORED_BY"]
        assert len(sponsored) == 2
        assert all(r.target == "company_acme_pharma" for r in sponsored)
        assert graph.sources == ["ct1"]
        assert graph.metadata.entity_count == len(graph.entities)
        assert graph.metadata.relationship_count == len(graph.relationships)
        assert graph.metadata.data_quality == "verified"

    def test_insights_carry_attribution(self, registry, builder, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        graph = builder.build()
        by_type = {i.type: i for i in graph.insights}
        assert by_type["clinical_trial_landscape"].agent == "clinical_trial_analyzer"
        assert by_type["clinical_trial_landscape"].source == "ct1"
        assert by_type["hub_entities"].agent == "knowledge_integrator"
        hubs = by_type["hub_entities"].metrics["hubs"]
        assert {"id": "company_acme_pharma", "name": "ACME PHARMA", "type": "company", "degree": 2} in hubs
        assert all(i.timestamp is not None for i in graph.insights)

    def test_events_emitted(self, registry, builder, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        seen = []
        registry.events.subscribe(GraphConstructionStarted, seen.append)
        registry.events.subscribe(GraphConstructionCompleted, seen.append)
        graph = builder.build()
        assert [type(e) for e in seen] == [GraphConstructionStarted, GraphConstructionCompleted]
        assert seen[1].graph_id == graph.id
        assert seen[1].entity_count == graph.metadata.entity_count

    def test_cross_source_linking(self, registry, builder, trials_csv, patents_json):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        registry.upload_file(patents_json, {"id": "pat1", "dataType": "patents"})

        graph = builder.build()

        acme = graph.entities["company_acme_pharma"]
        assert acme.sources == ["ct1", "pat1"] or acme.sources == ["pat1", "ct1"]
        rel = graph.relationships["rel_intervention_acmeumab_drug_acmeumab"]
        assert rel.type == "CORRESPONDS_TO"
        assert set(rel.sources) == {"ct1", "pat1"}
        overlap = next(i for i in graph.insights if i.type == "cross_source_overlap")
        assert overlap.metrics["multi_source_entities"] >= 1

    def test_fuzzy_cross_reference(self, registry, builder, write_file):
        trials = write_file("t.csv", "nctId,sponsor\nNCT1,Bristol Myers Squibb Co\n")
        patents = write_file("p.json", [{"patentNumber": "US1", "assignee": "Bristol-Myers Squibb"}])
        registry.upload_file(trials, {"id": "ct", "dataType": "clinical_trials"})
        registry.upload_file(patents, {"id": "pat", "dataType": "patents"})

        graph = builder.build()

        same_as = [r for r in graph.relationships.values() if r.type == "SAME_AS"]
        assert len(same_as) == 1
        assert same_as[0].properties["method"] == "fuzzy"
        assert {same_as[0].source, same_as[0].target} == {
            "company_bristol_myers_squibb_co",
            "company_bristol_myers_squibb",
        }

    def test_agent_failure_is_partial(self, registry, config, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        agents = [*default_agents(config), ExplodingAgent()]
        builder = GraphBuilder(registry, GraphStore(config), config=config, agents=agents)

        graph = builder.build()

        assert graph.status is GraphStatus.COMPLETED
        assert graph.metadata.data_quality == "partial"
        [failure] = graph.metadata.agent_failures
        assert (failure.agent, failure.source, failure.error) == ("exploding", "ct1", "boom")
        assert "company_acme_pharma" in graph.entities

    def test_skipped_sources(self, registry, builder, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        registry.register({"id": "empty", "dataType": "patents"})

        graph = builder.build(["ct1", "empty", "ghost"])

        assert graph.sources == ["ct1"]
        assert graph.metadata.sources_skipped == ["ghost", "empty"]

    def test_unreadable_records_are_skipped(self, registry, builder, config, trials_csv, patents_json):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        registry.upload_file(patents_json, {"id": "pat1", "dataType": "patents"})
        (config.records_dir / "pat1.json").write_text("{not json")

        graph = builder.build()

        assert graph.status is GraphStatus.COMPLETED
        assert graph.sources == ["ct1"]
        assert graph.metadata.sources_skipped == ["pat1"]
        assert "company_acme_pharma" in graph.entities
        assert [g.status for g in builder.store.list(include_building=True)] == [GraphStatus.COMPLETED]

    def test_source_removed_mid_build_is_skipped(self, registry, builder, trials_csv, patents_json, monkeypatch):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        registry.upload_file(patents_json, {"id": "pat1", "dataType": "patents"})
        load_records = registry.load_records

        def load_after_removal(source_id):
            if source_id == "pat1":
                registry.deregister("pat1")
            return load_records(source_id)

        monkeypatch.setattr(registry, "load_records", load_after_removal)

        graph = builder.build()

        assert graph.sources == ["ct1"]
        assert graph.metadata.sources_skipped == ["pat1"]

    def test_empty_selection(self, builder):
        graph = builder.build([])
        assert graph.status is GraphStatus.COMPLETED
        assert graph.entities == {}
        assert graph.metadata.data_quality == "unknown"

    def test_parallel_matches_sequential(self, registry, config, trials_csv, patents_json):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        registry.upload_file(patents_json, {"id": "pat1", "dataType": "patents"})
        sequential = GraphBuilder(registry, GraphStore(config), config=config).build()
        parallel_config = config.model_copy(update={"max_workers": 4})
        parallel = GraphBuilder(registry, GraphStore(parallel_config), config=parallel_config).build()

        assert parallel.entities == sequential.entities
        assert parallel.relationships == sequential.relationships

    def test_snapshot_persisted(self, registry, builder, config, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        graph = builder.build()
        assert (config.graphs_dir / f"{graph.id}.json").exists()

        reloaded = GraphStore(config).get(graph.id)
        assert reloaded.entities.keys() == graph.entities.keys()
        assert reloaded.status is GraphStatus.COMPLETED

    def test_persistence_failure(self, registry, builder, config, trials_csv, monkeypatch):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        failed = []
        registry.events.subscribe(GraphConstructionFailed, failed.append)

        def broken_save(graph):
            raise PersistenceError("disk full")

        monkeypatch.setattr(builder.store, "save", broken_save)

        with pytest.raises(PersistenceError) as exc_info:
            builder.build()

        graph = exc_info.value.graph
        assert graph.status is GraphStatus.FAILED
        assert builder.store.get(graph.id).status is GraphStatus.FAILED
        assert [e.graph_id for e in failed] == [graph.id]


class TestDeterminism:
    def test_result_is_independent_of_agent_instances(self, registry, config, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        result_a = default_agents(config)[1].run(registry.load_records("ct1"), registry.get("ct1"))
        result_b = default_agents(config)[1].run(registry.load_records("ct1"), registry.get("ct1"))
        assert isinstance(result_a, AgentResult)
        assert result_a.entities.keys() == result_b.entities.keys()
        assert result_a.relationships.keys() == result_b.relationships.keys()


class TestStore:
    def test_get_returns_a_copy(self, registry, builder, trials_csv):
        registry.upload_file(trials_csv, {"id": "ct1", "dataType": "clinical_trials"})
        graph = builder.build()
        graph.metadata.data_quality = "partial"

        fetched = builder.store.get(graph.id)
        assert fetched.metadata.data_quality == "verified"
        fetched.entities.clear()
        fetched.status = GraphStatus.FAILED

        stored = builder.store.get(graph.id)
        assert stored.status is GraphStatus.COMPLETED
        assert "company_acme_pharma" in stored.entities

    def test_list_hides_building_graphs(self, config):
        store = GraphStore(config)
        store.remember(KnowledgeGraph(id="kg_in_progress"))
        done = KnowledgeGraph(id="kg_done", status=GraphStatus.COMPLETED)
        store.save(done)

        assert [g.id for g in store.list()] == ["kg_done"]
        assert {g.id for g in store.list(include_building=True)} == {"kg_in_progress", "kg_done"}
