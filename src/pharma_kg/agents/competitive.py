"""Competitive intelligence agent: company entities with threat assessments."""

from collections import Counter

from pharma_kg.agents.base import Agent, AgentResult
from pharma_kg.ingest.normalize import normalize_competitive
from pharma_kg.ingest.records import lookup
from pharma_kg.models import DataSource, Record


class CompetitiveIntelligenceAgent(Agent):
    agent_id = "competitive_intelligence_agent"
    name = "Competitive Intelligence Agent"
    description = "Extracts competitor companies with threat scores"
    capabilities = ("competitor_tracking", "threat_assessment")
    data_types = ("competitive_intelligence", "market_data")

    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        result = AgentResult()
        threats: Counter[str] = Counter()

        for raw in records:
            record = normalize_competitive(raw)
            name = lookup(record, "companyInfo.name")
            if not name:
                continue
            threat = record.get("overallThreat")
            result.add_entity(
                "company",
                name,
                source.id,
                name=name,
                ticker=lookup(record, "companyInfo.ticker"),
                threat_score=record.get("threatScore"),
                overall_threat=threat,
            )
            threats[str(threat or "Unknown")] += 1

        result.insights.append(
            self.insight(
                "competitive_landscape",
                f"Analyzed {len(records)} competitive intelligence records from {source.name}",
                source,
                total_companies=result.count("company"),
                threat_distribution=dict(sorted(threats.items())),
            )
        )
        return result
