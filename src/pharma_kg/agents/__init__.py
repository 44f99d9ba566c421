"""
Extraction agents.

Each agent declares the data types it accepts; the graph builder runs every
relevant agent over each source's records, in the order listed here.
"""

from pharma_kg.agents.base import (
    Agent,
    AgentResult,
    entity_id,
    normalize_name,
    relationship_id,
)
from pharma_kg.agents.clinical_trial import ClinicalTrialAgent
from pharma_kg.agents.competitive import CompetitiveIntelligenceAgent
from pharma_kg.agents.financial import FinancialAgent
from pharma_kg.agents.patent import PatentAgent
from pharma_kg.agents.resolver import EntityResolverAgent
from pharma_kg.config import Settings


def default_agents(config: Settings | None = None) -> list[Agent]:
    """All built-in agents in declaration order (resolver last)."""
    return [
        PatentAgent(),
        ClinicalTrialAgent(),
        FinancialAgent(),
        CompetitiveIntelligenceAgent(),
        EntityResolverAgent(config),
    ]


def relevant_agents(agents: list[Agent], data_type: str) -> list[Agent]:
    return [agent for agent in agents if agent.accepts(data_type)]


__all__ = [
    "Agent",
    "AgentResult",
    "ClinicalTrialAgent",
    "CompetitiveIntelligenceAgent",
    "EntityResolverAgent",
    "FinancialAgent",
    "PatentAgent",
    "default_agents",
    "entity_id",
    "normalize_name",
    "relationship_id",
    "relevant_agents",
]
