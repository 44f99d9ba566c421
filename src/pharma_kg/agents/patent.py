"""
Patent analyzer.

patent --ASSIGNED_TO--> company
patent --INVENTED_BY--> inventor
patent --PROTECTS--> drug
"""

from pharma_kg.agents.base import Agent, AgentResult
from pharma_kg.ingest.normalize import normalize_patent
from pharma_kg.ingest.records import lookup
from pharma_kg.models import DataSource, Record


class PatentAgent(Agent):
    agent_id = "patent_analyzer"
    name = "Patent Analyzer"
    description = "Extracts patents, assignees, inventors and protected drugs"
    capabilities = ("patent_extraction", "assignee_linking", "inventor_linking", "drug_protection")
    data_types = ("patents",)

    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        result = AgentResult()
        sid = source.id

        for raw in records:
            record = normalize_patent(raw)
            number = record.get("patentNumber")
            if number is None:
                continue

            patent = result.add_entity(
                "patent",
                number,
                sid,
                patent_number=str(number),
                name=str(number),
                title=record.get("title"),
                abstract=record.get("abstract"),
                filing_date=record.get("filingDate"),
                grant_date=record.get("grantDate"),
                expiry_date=record.get("expiryDate"),
                status=record.get("status"),
            )
            if patent is None:
                continue

            assignee = lookup(record, "assignee.name")
            if assignee:
                company = result.add_entity(
                    "company",
                    assignee,
                    sid,
                    name=assignee,
                    organization_type=lookup(record, "assignee.type"),
                )
                if company:
                    result.link(patent, company, "ASSIGNED_TO", sid)

            for inventor_info in record.get("inventors") or []:
                inventor = result.add_entity("inventor", inventor_info["name"], sid, name=inventor_info["name"])
                if inventor:
                    result.link(patent, inventor, "INVENTED_BY", sid)

            drug_name = lookup(record, "drugInfo.drugName")
            if drug_name:
                drug = result.add_entity(
                    "drug",
                    drug_name,
                    sid,
                    name=drug_name,
                    therapeutic_area=lookup(record, "drugInfo.therapeuticArea"),
                )
                if drug:
                    result.link(patent, drug, "PROTECTS", sid)

        result.insights.append(
            self.insight(
                "patent_landscape",
                f"Analyzed {len(records)} patents from {source.name}",
                source,
                total_patents=len(records),
                unique_companies=result.count("company"),
                unique_inventors=result.count("inventor"),
            )
        )
        return result
