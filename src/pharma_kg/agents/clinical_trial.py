"""
Clinical trial analyzer.

clinical_trial --SPONSORED_BY--> company
clinical_trial --TESTS--> intervention
"""

from collections import Counter

from pharma_kg.agents.base import Agent, AgentResult
from pharma_kg.ingest.normalize import normalize_clinical_trial
from pharma_kg.models import DataSource, Record


def distribution(records: list[Record], key: str) -> dict[str, int]:
    """Count records by a field value; missing values count as "Unknown"."""
    counts = Counter(str(r.get(key) or "Unknown") for r in records)
    return dict(sorted(counts.items()))


class ClinicalTrialAgent(Agent):
    agent_id = "clinical_trial_analyzer"
    name = "Clinical Trial Analyzer"
    description = "Extracts trials, sponsors and tested interventions"
    capabilities = ("trial_extraction", "sponsor_linking", "intervention_linking")
    data_types = ("clinical_trials", "regulatory")

    def run(self, records: list[Record], source: DataSource) -> AgentResult:
        result = AgentResult()
        sid = source.id
        trials = [normalize_clinical_trial(r) for r in records]

        for record in trials:
            nct_id = record.get("nctId") or record.get("id")
            if not nct_id:
                continue

            trial = result.add_entity(
                "clinical_trial",
                nct_id,
                sid,
                nct_id=str(nct_id),
                name=str(nct_id),
                title=record.get("title"),
                phase=record.get("phase"),
                status=record.get("status"),
                start_date=record.get("startDate"),
                completion_date=record.get("completionDate"),
                enrollment=record.get("enrollment"),
            )
            if trial is None:
                continue

            sponsor_name = record.get("sponsor")
            if sponsor_name:
                sponsor = result.add_entity(
                    "company",
                    sponsor_name,
                    sid,
                    name=sponsor_name,
                    organization_type=record.get("sponsorType"),
                )
                if sponsor:
                    result.link(trial, sponsor, "SPONSORED_BY", sid)

            intervention_name = record.get("interventionName")
            if intervention_name:
                intervention = result.add_entity(
                    "intervention",
                    intervention_name,
                    sid,
                    name=intervention_name,
                    intervention_type=record.get("interventionType"),
                )
                if intervention:
                    result.link(trial, intervention, "TESTS", sid)

        result.insights.append(
            self.insight(
                "clinical_trial_landscape",
                f"Analyzed {len(records)} clinical trials from {source.name}",
                source,
                total_trials=len(records),
                phase_distribution=distribution(trials, "phase"),
                status_distribution=distribution(trials, "status"),
            )
        )
        return result
