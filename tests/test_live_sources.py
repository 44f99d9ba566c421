"""Live API checks (run with --run-network)."""

import pytest

from pharma_kg.sources import SourceRegistry

CLINICAL_TRIALS_URL = "https://clinicaltrials.gov/api/v2/studies?query.term=pembrolizumab&pageSize=5"


@pytest.mark.network
def test_clinicaltrials_gov_refresh(config):
    """Refresh a real ClinicalTrials.gov query end to end."""
    live = config.model_copy(update={"http_retries": 3})
    registry = SourceRegistry(live)
    try:
        registry.register({"id": "ctgov", "type": "api", "url": CLINICAL_TRIALS_URL, "dataType": "clinical_trials"})
        source = registry.refresh("ctgov")
    finally:
        registry.fetcher.close()

    assert source.status.value == "active"
    assert source.record_count > 0
    records = registry.load_records("ctgov")
    assert all(r["nctId"].startswith("NCT") for r in records)
