"""Tests for sync/importer.py: bundle import and response handling."""

import json

import pytest

from kibana_sync.errors import ConfigurationError, RemoteError
from kibana_sync.file_handler import StagingDir
from kibana_sync.sync.codec import read_bundle
from kibana_sync.sync.importer import (
    BUNDLE_NAME,
    RESPONSE_NAME,
    ImportOrchestrator,
    describe_import_error,
)
from kibana_sync.sync.reconciler import split_bundle, write_documents


@pytest.fixture
def staging(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return StagingDir(path)


@pytest.fixture
def objects_dir(tmp_path, sample_bundle):
    target = tmp_path / "objects"
    write_documents(split_bundle(sample_bundle()), target)
    return target


class TestPush:
    def test_full_success(self, mock_kibana_client, staging, objects_dir):
        mock_kibana_client.import_bundle.return_value = json.dumps(
            {"success": True, "successCount": 2}
        )

        outcome = ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        assert outcome.success_count == 2
        assert not outcome.partial
        assert outcome.summary() == "2 of 2 objects imported"
        mock_kibana_client.import_bundle.assert_called_once_with(
            staging.file(BUNDLE_NAME)
        )
        assert not staging.preserved

    def test_bundle_contents(self, mock_kibana_client, staging, objects_dir):
        mock_kibana_client.import_bundle.return_value = '{"success":true,"successCount":2}'

        ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        docs = read_bundle(staging.file(BUNDLE_NAME))
        assert [d["id"] for d in docs] == ["dash-1", "vis-1"]
        assert isinstance(docs[0]["attributes"]["panelsJSON"], str)
        assert "managed" not in docs[0]

    def test_managed_push(self, mock_kibana_client, staging, objects_dir):
        mock_kibana_client.import_bundle.return_value = '{"success":true,"successCount":2}'

        ImportOrchestrator(mock_kibana_client, staging).push(objects_dir, managed=True)

        docs = read_bundle(staging.file(BUNDLE_NAME))
        assert all(d["managed"] is True for d in docs)

    def test_partial_success_is_warning(
        self, mock_kibana_client, staging, objects_dir, caplog
    ):
        mock_kibana_client.import_bundle.return_value = json.dumps(
            {
                "success": True,
                "successCount": 1,
                "errors": [
                    {
                        "type": "visualization",
                        "id": "vis-1",
                        "error": {"type": "conflict"},
                    }
                ],
            }
        )

        outcome = ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        assert outcome.partial
        assert "Partial import" in caplog.text
        assert "visualization=vis-1: conflict" in caplog.text

    def test_failure_preserves_response(self, mock_kibana_client, staging, objects_dir):
        response = json.dumps(
            {
                "success": False,
                "successCount": 0,
                "errors": [
                    {
                        "type": "dashboard",
                        "id": "dash-1",
                        "title": "Web traffic",
                        "error": {"type": "missing_references"},
                    }
                ],
            }
        )
        mock_kibana_client.import_bundle.return_value = response

        with pytest.raises(RemoteError, match="1 object errors") as exc_info:
            ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        assert staging.preserved
        assert exc_info.value.response_path == staging.file(RESPONSE_NAME)
        assert staging.file(RESPONSE_NAME).read_text() == response

    def test_failure_with_null_fields_still_saves_response(
        self, mock_kibana_client, staging, objects_dir
    ):
        response = json.dumps(
            {
                "success": False,
                "successCount": None,
                "errors": [
                    {"type": "lens", "id": "l1", "meta": None, "error": {"type": "conflict"}}
                ],
            }
        )
        mock_kibana_client.import_bundle.return_value = response

        with pytest.raises(RemoteError, match="1 object errors"):
            ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        assert staging.file(RESPONSE_NAME).read_text() == response

    def test_success_with_null_count_and_errors(
        self, mock_kibana_client, staging, objects_dir
    ):
        mock_kibana_client.import_bundle.return_value = (
            '{"success":true,"successCount":null,"errors":null}'
        )

        outcome = ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

        assert outcome.success_count == 0
        assert outcome.errors == []
        assert outcome.partial

    def test_error_envelope(self, mock_kibana_client, staging, objects_dir):
        mock_kibana_client.import_bundle.return_value = (
            '{"statusCode":415,"error":"Unsupported Media Type","message":"bad file"}'
        )
        with pytest.raises(RemoteError) as exc_info:
            ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)
        assert exc_info.value.status_code == 415
        assert staging.preserved

    def test_non_json_response(self, mock_kibana_client, staging, objects_dir):
        mock_kibana_client.import_bundle.return_value = "<html>"
        with pytest.raises(RemoteError, match="non-JSON"):
            ImportOrchestrator(mock_kibana_client, staging).push(objects_dir)

    def test_missing_objects_dir(self, mock_kibana_client, staging, tmp_path):
        with pytest.raises(ConfigurationError):
            ImportOrchestrator(mock_kibana_client, staging).push(tmp_path / "nope")
        mock_kibana_client.import_bundle.assert_not_called()


def test_describe_import_error_with_meta_title():
    entry = {
        "type": "index-pattern",
        "id": "logs",
        "meta": {"title": "logs-*"},
        "error": {"type": "unknown"},
    }
    assert describe_import_error(entry) == "index-pattern=logs (logs-*): unknown"


def test_describe_import_error_with_null_meta():
    entry = {"type": "lens", "id": "l1", "meta": None, "error": {"type": "conflict"}}
    assert describe_import_error(entry) == "lens=l1: conflict"
