"""Push the local mirror back to Kibana.

Per-object files are joined into one bundle in a staging directory and
imported with ``overwrite=true``.  Kibana's ``success`` flag is the only
pass/fail signal: ``false`` aborts the run and keeps the raw response on
disk, while a short ``successCount`` with ``success: true`` is reported as
a warning only.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..core.client import KibanaClient, envelope_error, is_error_envelope
from ..errors import RemoteError
from ..file_handler import StagingDir, write_file_atomic
from .codec import write_bundle
from .models import ImportOutcome
from .reconciler import join_files, list_object_files

logger = logging.getLogger(__name__)

BUNDLE_NAME = "import.ndjson"
RESPONSE_NAME = "import_response.json"


def describe_import_error(entry: dict[str, Any]) -> str:
    """One-line description of a per-object entry from ``errors``."""
    ref = f"{entry.get('type', '?')}={entry.get('id', '?')}"
    title = entry.get("title") or (entry.get("meta") or {}).get("title")
    error = entry.get("error", {})
    reason = error.get("type", "unknown") if isinstance(error, dict) else str(error)
    if title:
        return f"{ref} ({title}): {reason}"
    return f"{ref}: {reason}"


class ImportOrchestrator:
    """Import per-object files into Kibana.

    Args:
        client: Kibana client for the configured space.
        staging: Directory that receives the bundle and, on failure, the
            raw import response.
    """

    def __init__(self, client: KibanaClient, staging: StagingDir) -> None:
        self.client = client
        self.staging = staging

    def push(self, objects_dir: Path, managed: bool = False) -> ImportOutcome:
        """Join every object file under *objects_dir* and import it.

        Raises:
            ConfigurationError: If *objects_dir* does not exist.
            RemoteError: If Kibana reports ``success: false``.
        """
        docs = join_files(list_object_files(objects_dir), managed=managed)
        logger.info(
            "Bundling %d objects%s", len(docs), " as managed" if managed else ""
        )
        return self.import_documents(docs)

    def import_documents(self, docs: list[dict[str, Any]]) -> ImportOutcome:
        bundle_path = self.staging.file(BUNDLE_NAME)
        write_bundle(bundle_path, docs)
        text = self.client.import_bundle(bundle_path)
        return self._parse_response(text, submitted=len(docs))

    def _fail(self, error: RemoteError, text: str) -> RemoteError:
        path = self.staging.file(RESPONSE_NAME)
        write_file_atomic(path, text)
        self.staging.preserve()
        error.response_path = path
        return error

    def _parse_response(self, text: str, submitted: int) -> ImportOutcome:
        try:
            body = json.loads(text)
        except ValueError:
            raise self._fail(
                RemoteError("Import returned a non-JSON response", raw=text),
                text,
            ) from None

        if is_error_envelope(body):
            raise self._fail(envelope_error(body, raw=text), text)

        if not isinstance(body, dict) or body.get("success") is not True:
            errors = (body.get("errors") or []) if isinstance(body, dict) else []
            for entry in errors:
                logger.error("Import error: %s", describe_import_error(entry))
            raise self._fail(
                RemoteError(
                    f"Import failed ({len(errors)} object errors)", raw=text
                ),
                text,
            )

        outcome = ImportOutcome(
            submitted=submitted,
            success=True,
            success_count=int(body.get("successCount") or 0),
            errors=body.get("errors") or [],
        )
        if outcome.partial:
            logger.warning("Partial import: %s", outcome.summary())
            for entry in outcome.errors:
                logger.warning("  %s", describe_import_error(entry))
        else:
            logger.info(outcome.summary())
        return outcome
