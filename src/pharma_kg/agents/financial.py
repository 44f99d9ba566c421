"""Financial analyzer: company entities enriched with market figures."""

from pharma_kg.agents.base import Agent, AgentResult
from pharma_kg.ingest.normalize import normalize_financial
from pharma_kg.models import DataSource, Record


class FinancialAgent(Agent):
    agent_id = "financial_analyzer"
    name = "Financial Analyzer"
    description = "Extracts companies with market cap, revenue and profit margin"
    capabilities = ("company_financials", "market_valuation")
    data_types = ("financial", "market_data")

    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        result = AgentResult()
        market_caps = []
        margins = []

        for raw in records:
            record = normalize_financial(raw)
            name = record.get("companyName")
            if not name:
                continue
            market_cap = record.get("marketCap")
            margin = record.get("profitMargin")
            result.add_entity(
                "company",
                name,
                source.id,
                name=name,
                symbol=record.get("symbol"),
                market_cap=market_cap,
                revenue=record.get("revenue"),
                profit_margin=margin,
            )
            if isinstance(market_cap, int | float):
                market_caps.append(market_cap)
            if isinstance(margin, int | float):
                margins.append(margin)

        result.insights.append(
            self.insight(
                "financial_landscape",
                f"Analyzed {len(records)} financial records from {source.name}",
                source,
                total_companies=result.count("company"),
                total_market_cap=sum(market_caps),
                average_profit_margin=sum(margins) / len(margins) if margins else None,
            )
        )
        return result
