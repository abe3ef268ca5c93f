"""Tests for sync/exporter.py: export requests and mirror updates."""

import json
from unittest.mock import Mock, patch

import pytest

from kibana_sync.core.client import KibanaClient
from kibana_sync.errors import ManifestMissing, RemoteError
from kibana_sync.file_handler import StagingDir
from kibana_sync.sync.codec import dump_bundle
from kibana_sync.sync.exporter import (
    ExportOrchestrator,
    build_export_request,
    build_type_export_request,
    decode_export_response,
)
from kibana_sync.sync.manifest import ManifestStore
from kibana_sync.sync.models import Manifest, ObjectRef


@pytest.fixture
def staging(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return StagingDir(path)


@pytest.fixture
def store(mock_config):
    return ManifestStore(mock_config.manifest_path)


class TestRequests:
    def test_refs_request_always_deep(self):
        body = build_export_request([ObjectRef(type="dashboard", id="a")])
        assert body == {
            "objects": [{"type": "dashboard", "id": "a"}],
            "excludeExportDetails": True,
            "includeReferencesDeep": True,
        }

    def test_type_request(self):
        body = build_type_export_request(["dashboard", "search"])
        assert body["type"] == ["dashboard", "search"]
        assert body["includeReferencesDeep"] is True

    def test_decode_bundle_is_not_error(self, sample_bundle):
        assert decode_export_response(dump_bundle(sample_bundle())) is None

    def test_decode_single_line_bundle(self, dashboard_doc):
        assert decode_export_response(dump_bundle([dashboard_doc])) is None

    def test_status_code_wins_over_other_keys(self):
        text = json.dumps(
            {"statusCode": 400, "error": "Bad Request", "message": "m", "objects": []}
        )
        assert decode_export_response(text)["statusCode"] == 400


class TestExport:
    def test_returns_documents_and_stages_bundle(
        self, mock_kibana_client, staging, sample_bundle
    ):
        mock_kibana_client.export_objects.return_value = dump_bundle(sample_bundle())
        exporter = ExportOrchestrator(mock_kibana_client, staging)

        docs = exporter.export_refs([ObjectRef(type="dashboard", id="dash-1")])

        assert docs == sample_bundle()
        assert staging.file("export.ndjson").exists()
        assert not staging.preserved

    def test_error_envelope_saved_and_raised(self, mock_kibana_client, staging):
        envelope = '{"statusCode":400,"error":"Bad Request","message":"bad type"}'
        mock_kibana_client.export_objects.return_value = envelope
        exporter = ExportOrchestrator(mock_kibana_client, staging)

        with pytest.raises(RemoteError) as exc_info:
            exporter.export_types(["nope"])

        error = exc_info.value
        assert (error.status_code, error.error, error.message) == (
            400,
            "Bad Request",
            "bad type",
        )
        assert error.response_path == staging.file("export_response.json")
        assert error.response_path.read_text() == envelope
        assert staging.preserved

    def test_error_without_staging(self, mock_kibana_client):
        mock_kibana_client.export_objects.return_value = '{"statusCode":500}'
        with pytest.raises(RemoteError):
            ExportOrchestrator(mock_kibana_client).export_types(["dashboard"])

    def test_empty_refs_skip_request(self, mock_kibana_client):
        assert ExportOrchestrator(mock_kibana_client).export_refs([]) == []
        mock_kibana_client.export_objects.assert_not_called()

    def test_export_manifest_sends_manifest_body(self, mock_kibana_client):
        mock_kibana_client.export_objects.return_value = ""
        manifest = Manifest(objects=[ObjectRef(type="lens", id="l1")])

        ExportOrchestrator(mock_kibana_client).export_manifest(manifest)

        mock_kibana_client.export_objects.assert_called_once_with(
            manifest.to_json_dict()
        )


class TestApplyBundle:
    def test_create_new_manifest(self, mock_kibana_client, mock_config, store, sample_bundle):
        exporter = ExportOrchestrator(mock_kibana_client)

        result = exporter.apply_bundle(
            sample_bundle(with_summary=True), mock_config.objects_dir, store, create=True
        )

        assert result.added_count == 2
        assert result.files == 2
        assert result.total == 2
        assert (mock_config.objects_dir / "dashboard" / "dash-1.json").exists()
        assert [str(r) for r in store.load().objects] == [
            "dashboard=dash-1",
            "visualization=vis-1",
        ]

    def test_merge_into_existing(self, mock_kibana_client, mock_config, store, sample_bundle):
        store.save(Manifest(objects=[ObjectRef(type="dashboard", id="dash-1")]))

        result = ExportOrchestrator(mock_kibana_client).apply_bundle(
            sample_bundle(), mock_config.objects_dir, store
        )

        assert result.added_count == 1
        assert result.total == 2

    def test_missing_manifest_writes_nothing(
        self, mock_kibana_client, mock_config, store, sample_bundle
    ):
        with pytest.raises(ManifestMissing):
            ExportOrchestrator(mock_kibana_client).apply_bundle(
                sample_bundle(), mock_config.objects_dir, store
            )
        assert not mock_config.objects_dir.exists()

    def test_pull_is_idempotent(self, mock_kibana_client, mock_config, store, sample_bundle):
        exporter = ExportOrchestrator(mock_kibana_client)
        exporter.apply_bundle(sample_bundle(), mock_config.objects_dir, store, create=True)
        first = {
            p: p.read_text() for p in mock_config.objects_dir.rglob("*.json")
        }

        result = exporter.apply_bundle(sample_bundle(), mock_config.objects_dir, store)

        assert result.added_count == 0
        assert {p: p.read_text() for p in mock_config.objects_dir.rglob("*.json")} == first


class TestHttpFailures:
    @patch("kibana_sync.core.client.requests.Session.request")
    def test_bad_gateway_json_is_not_a_bundle(
        self, mock_request, mock_config, store, staging
    ):
        response = Mock()
        response.status_code = 502
        response.text = '{"message":"Bad Gateway"}'
        mock_request.return_value = response
        store.save(Manifest(objects=[ObjectRef(type="dashboard", id="a")]))
        exporter = ExportOrchestrator(KibanaClient(mock_config), staging)

        with pytest.raises(RemoteError) as exc_info:
            exporter.export_manifest(store.load())

        assert exc_info.value.status_code == 502
        assert not staging.file("export.ndjson").exists()
        assert not mock_config.objects_dir.exists()
        assert [str(r) for r in store.load().objects] == ["dashboard=a"]
