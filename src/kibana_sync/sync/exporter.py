"""Export saved objects from Kibana into the local mirror.

Every export asks Kibana for the *reference closure* of the requested
objects (``includeReferencesDeep``), so adding a dashboard also brings in
the visualizations, searches and data views it depends on.  The pipeline
after a successful export is always:

    split -> normalize -> write files -> build patch -> merge into manifest

An error envelope from Kibana aborts the run; nothing is retried.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..core.client import KibanaClient, envelope_error, is_error_envelope
from ..file_handler import StagingDir, write_file_atomic
from .codec import parse_bundle, write_bundle
from .manifest import ManifestStore, merge_manifests, patch_from_bundle
from .models import Manifest, ObjectRef, PullResult
from .reconciler import split_bundle, write_documents

logger = logging.getLogger(__name__)

DEFAULT_INIT_TYPES: tuple[str, ...] = (
    "dashboard",
    "visualization",
    "lens",
    "search",
    "index-pattern",
    "map",
    "tag",
)


def build_export_request(refs: Iterable[ObjectRef]) -> dict[str, Any]:
    """Export body for explicit references plus their closure."""
    return Manifest(objects=list(refs)).to_json_dict()


def build_type_export_request(types: Iterable[str]) -> dict[str, Any]:
    """Export body for every object of the given types."""
    return {
        "type": list(types),
        "excludeExportDetails": True,
        "includeReferencesDeep": True,
    }


def decode_export_response(text: str) -> dict[str, Any] | None:
    """Return the error envelope in *text*, or ``None`` for a bundle."""
    try:
        body = json.loads(text)
    except ValueError:
        # Multi-line NDJSON is never a single JSON value
        return None
    return body if is_error_envelope(body) else None


class ExportOrchestrator:
    """Run exports and fold their results into a repository.

    Args:
        client: Kibana client for the configured space.
        staging: Scratch directory for the transient bundle and, on
            failure, the raw response.  Optional.
    """

    def __init__(self, client: KibanaClient, staging: StagingDir | None = None) -> None:
        self.client = client
        self.staging = staging

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, request: dict[str, Any]) -> list[dict[str, Any]]:
        """Submit one export request and return the bundle documents.

        Raises:
            RemoteError: If Kibana answers with an error envelope.
        """
        text = self.client.export_objects(request)

        envelope = decode_export_response(text)
        if envelope is not None:
            error = envelope_error(envelope, raw=text)
            if self.staging is not None:
                path = self.staging.file("export_response.json")
                write_file_atomic(path, text)
                self.staging.preserve()
                error.response_path = path
            logger.error(
                "Export failed: %s %s",
                envelope.get("statusCode"),
                envelope.get("message"),
            )
            raise error

        docs = parse_bundle(text)
        logger.info("Exported %d objects", len(docs))
        if self.staging is not None:
            write_bundle(self.staging.file("export.ndjson"), docs)
        return docs

    def export_refs(self, refs: list[ObjectRef]) -> list[dict[str, Any]]:
        if not refs:
            logger.warning("Nothing to export: no object references given")
            return []
        return self.export(build_export_request(refs))

    def export_manifest(self, manifest: Manifest) -> list[dict[str, Any]]:
        return self.export_refs(list(manifest.objects))

    def export_types(self, types: Iterable[str]) -> list[dict[str, Any]]:
        return self.export(build_type_export_request(types))

    # ------------------------------------------------------------------
    # Mirror
    # ------------------------------------------------------------------

    def apply_bundle(
        self,
        docs: list[dict[str, Any]],
        objects_dir: Path,
        store: ManifestStore,
        create: bool = False,
    ) -> PullResult:
        """Write an exported bundle into the repository and track it.

        Args:
            docs: Exported bundle.
            objects_dir: Where per-object files go.
            store: The master manifest.
            create: Start a new manifest instead of merging into an
                existing one (``init``).

        Raises:
            ManifestMissing: If *create* is false and there is no manifest.
        """
        # Load before writing anything so a missing manifest leaves no trace
        master = Manifest() if create else store.load()

        written = write_documents(split_bundle(docs), objects_dir)
        patch = patch_from_bundle(docs)
        merged, added = merge_manifests(master, patch)
        store.save(merged)

        result = PullResult(
            documents=len(docs),
            files=len(written),
            added_count=added,
            total=len(merged.objects),
        )
        logger.info(result.summary())
        return result
