"""Shared pytest fixtures for kibana-sync tests."""

import json
from unittest.mock import MagicMock

import pytest

from kibana_sync.config import Config


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Kibana instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Kibana instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer credentials out of the tests."""
    for key in (
        "KIBANA_URL",
        "KIBANA_SPACE",
        "KIBANA_APIKEY",
        "KIBANA_USERNAME",
        "KIBANA_PASSWORD",
        "KIBANA_INSECURE",
        "KIBANA_DEBUG",
        "KIBANA_KEEP_TEMP",
        "KIBANA_MANIFEST",
        "KIBANA_OBJECTS_DIR",
        "KIBANA_SYNC_CONFIG",
        "LLM_URL",
        "LLM_API_KEY",
        "LLM_MODEL",
        "LLM_TEMPERATURE",
        "DIFF_CHUNK_LINES",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config pointing at a repository under tmp_path."""
    return Config(
        kibana_url="https://kibana.example.com",
        space="ops",
        apikey="secret-key",
        manifest_path=tmp_path / "manifest.json",
        objects_dir=tmp_path / "objects",
    )


@pytest.fixture
def mock_kibana_client(mock_config):
    """Create a mock KibanaClient instance for testing."""
    from kibana_sync.core.client import KibanaClient

    client = MagicMock(spec=KibanaClient)
    client.config = mock_config
    return client


@pytest.fixture
def dashboard_doc():
    """A dashboard as Kibana exports it."""
    return {
        "attributes": {
            "title": "Web traffic",
            "panelsJSON": json.dumps(
                [{"panelIndex": "1", "panelRefName": "panel_0"}],
                separators=(",", ":"),
            ),
            "optionsJSON": '{"hidePanelTitles":false}',
            "kibanaSavedObjectMeta": {
                "searchSourceJSON": '{"query":{"query":"","language":"kuery"},"filter":[]}'
            },
        },
        "coreMigrationVersion": "8.8.0",
        "created_at": "2024-01-01T00:00:00.000Z",
        "id": "dash-1",
        "managed": False,
        "references": [
            {"id": "vis-1", "name": "panel_0", "type": "visualization"}
        ],
        "type": "dashboard",
        "updated_at": "2024-02-01T00:00:00.000Z",
        "version": "WzEsMV0=",
    }


@pytest.fixture
def visualization_doc():
    return {
        "attributes": {
            "title": "Requests per host",
            "visState": '{"title":"Requests per host","type":"histogram","params":{}}',
            "uiStateJSON": "{}",
        },
        "id": "vis-1",
        "references": [],
        "type": "visualization",
        "updated_by": "elastic",
        "version": "WzIsMV0=",
    }


@pytest.fixture
def sample_bundle(dashboard_doc, visualization_doc):
    """Factory returning a bundle, optionally with the export summary line."""

    def _bundle(with_summary: bool = False):
        docs = [dashboard_doc, visualization_doc]
        if with_summary:
            docs = docs + [
                {
                    "excludedObjects": [],
                    "excludedObjectsCount": 0,
                    "exportedCount": 2,
                    "missingRefCount": 0,
                    "missingReferences": [],
                }
            ]
        return docs

    return _bundle
