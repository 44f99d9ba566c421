"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import httpx
import pytest
from tenacity import wait_none

from pharma_kg.config import Settings
from pharma_kg.service import PharmaKG
from pharma_kg.sources import Fetcher, SourceRegistry


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-network",
        action="store_true",
        default=False,
        help="Run tests that call live third-party APIs",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "network: mark test as requiring live network access")


def pytest_collection_modifyitems(config, items):
    """Skip network tests unless --run-network is provided."""
    if config.getoption("--run-network"):
        # --run-network given: do not skip network tests
        return

    skip_network = pytest.mark.skip(reason="Need --run-network option to run network tests")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip_network)


@pytest.fixture
def config(tmp_path):
    """Settings isolated to a temporary data directory."""
    return Settings(data_dir=tmp_path / "data", http_retries=1, max_workers=1)


@pytest.fixture
def make_fetcher(config):
    """Build a Fetcher whose requests are answered by ``handler``."""
    clients = []

    def _make(handler, retries: int | None = None) -> Fetcher:
        cfg = config if retries is None else config.model_copy(update={"http_retries": retries})
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return Fetcher(client=client, config=cfg, wait=wait_none())

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def not_found_fetcher(make_fetcher):
    return make_fetcher(lambda request: httpx.Response(404))


@pytest.fixture
def registry(config, not_found_fetcher):
    return SourceRegistry(config, fetcher=not_found_fetcher)


@pytest.fixture
def service(config, not_found_fetcher):
    kg = PharmaKG(config, fetcher=not_found_fetcher)
    yield kg
    kg.close()


@pytest.fixture
def write_file(tmp_path):
    """Write text (or JSON-serializable data) to a file under tmp_path."""

    def _write(name: str, content) -> Path:
        path = tmp_path / "incoming" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if not isinstance(content, str):
            content = json.dumps(content)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


TRIALS_CSV = """nctId,title,phase,status,sponsor,interventionName,interventionType
NCT0001,Study of Acmeumab in asthma,PHASE2,RECRUITING,Acme Pharma,Acmeumab,BIOLOGICAL
NCT0002,Acmeumab long-term extension,PHASE3,COMPLETED,ACME PHARMA,Acmeumab,BIOLOGICAL
"""

PATENTS_JSON = [
    {
        "patentNumber": "US1234567",
        "title": "Anti-IL5 antibody formulation",
        "filingDate": "2015-03-01",
        "assignee": {"name": "Acme Pharma", "type": "company"},
        "inventors": [{"name": "Jane Doe"}, {"name": "John Roe"}],
        "drugInfo": {"drugName": "Acmeumab", "therapeuticArea": "Respiratory"},
    },
    {
        "patentNumber": "US7654321",
        "title": "Dosing regimen",
        "assignee": "Bristol-Myers Squibb",
        "inventors": [{"name": "Jane Doe"}],
    },
]


@pytest.fixture
def trials_csv(write_file):
    return write_file("trials.csv", TRIALS_CSV)


@pytest.fixture
def patents_json(write_file):
    return write_file("patents.json", PATENTS_JSON)
