"""Manifest synchronization and bundle reconciliation engine.

Keeps a git-friendly local mirror of Kibana saved objects in step with a
Kibana space.

Architecture
------------
Kibana only speaks in *bundles* (NDJSON export/import).  The local mirror
is a manifest of tracked ``(type, id)`` references plus one normalized
JSON file per object.  Reconciliation is explicit and batch-oriented:
``pull``/``add``/``init`` export from Kibana into the mirror,
``push``/``togo`` import the mirror into Kibana.

Modules:

- ``models``      -- ``ObjectRef``, ``Manifest``, ``SplitDocument``,
  ``PullResult``, ``ImportOutcome``: core data contracts.
- ``normalizer``  -- strips server-assigned fields.
- ``codec``       -- NDJSON encoding and JSON-in-string (un)escaping.
- ``manifest``    -- ``ManifestStore`` and the dedupe/sort merge.
- ``reconciler``  -- bundle <-> per-object files.
- ``exporter``    -- ``ExportOrchestrator``: export + mirror pipeline.
- ``importer``    -- ``ImportOrchestrator``: bundle + import pipeline.
- ``summarizer``  -- diff chunking and plain-language summaries.

Usage example
-------------
::

    from kibana_sync.core import KibanaClient
    from kibana_sync.file_handler import staging_dir
    from kibana_sync.sync import ExportOrchestrator, ManifestStore

    store = ManifestStore(Path("manifest.json"))
    with staging_dir(keep=config.keep_temp) as staging:
        exporter = ExportOrchestrator(KibanaClient(config), staging)
        docs = exporter.export_manifest(store.load())
        result = exporter.apply_bundle(docs, Path("objects"), store)
    print(result.summary())
"""

from .exporter import ExportOrchestrator
from .importer import ImportOrchestrator
from .manifest import (
    ManifestStore,
    merge_manifest_files,
    merge_manifests,
    patch_from_bundle,
    patch_from_refs,
)
from .models import (
    ImportOutcome,
    Manifest,
    ObjectRef,
    PullResult,
    SplitDocument,
)
from .normalizer import normalize_bundle, normalize_document
from .reconciler import join_files, split_bundle, write_documents
from .summarizer import DiffSummarizer, SummarizerClient, chunk_diff

__all__ = [
    "DiffSummarizer",
    "ExportOrchestrator",
    "ImportOrchestrator",
    "ImportOutcome",
    "Manifest",
    "ManifestStore",
    "ObjectRef",
    "PullResult",
    "SplitDocument",
    "SummarizerClient",
    "chunk_diff",
    "join_files",
    "merge_manifest_files",
    "merge_manifests",
    "normalize_bundle",
    "normalize_document",
    "patch_from_bundle",
    "patch_from_refs",
    "split_bundle",
    "write_documents",
]
