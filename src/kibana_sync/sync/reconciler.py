"""Translate between Kibana bundles and the per-object files of a repository.

Export direction (``split_bundle`` + ``write_documents``): every document
is normalized, its JSON-in-string attributes are expanded and it is
written to ``<objects_dir>/<type>/<id>.json``.

Import direction (``join_files``): files are read in lexicographic order,
optionally flagged ``managed`` and folded back into bundle documents.

Round trip: ``join_files`` over the files written for a bundle yields the
normalized bundle.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..errors import ConfigurationError, EncodingInvariantViolation
from ..file_handler import write_file_atomic
from .codec import (
    ESCAPED_JSON_PATHS,
    NAME_FIELDS,
    document_ref,
    dump_document,
    escape_paths,
    extract_name,
    list_document_files,
    load_document,
    object_filename,
    unescape_paths,
)
from .models import SplitDocument
from .normalizer import normalize_document

logger = logging.getLogger(__name__)


def split_bundle(docs: list[dict[str, Any]]) -> list[SplitDocument]:
    """Normalize and unescape each identifiable document of a bundle."""
    split: list[SplitDocument] = []
    for doc in docs:
        try:
            ref = document_ref(doc)
        except EncodingInvariantViolation:
            logger.debug("Skipping bundle record without identity")
            continue
        document = unescape_paths(normalize_document(doc), ESCAPED_JSON_PATHS)
        split.append(
            SplitDocument(
                ref=ref,
                document=document,
                title=extract_name(document, NAME_FIELDS),
            )
        )
    return split


def write_documents(split: list[SplitDocument], objects_dir: Path) -> list[Path]:
    """Write each document to its own file, replacing any previous version."""
    written: list[Path] = []
    for item in split:
        target = objects_dir / object_filename(item.ref.type, item.ref.id)
        write_file_atomic(target, dump_document(item.document))
        logger.debug("Wrote %s: %s", item.ref, item.title or "(untitled)")
        written.append(target)
    return written


def list_object_files(objects_dir: Path) -> list[Path]:
    """Return the object files of a repository in lexicographic order.

    Raises:
        ConfigurationError: If *objects_dir* does not exist.
    """
    if not objects_dir.is_dir():
        raise ConfigurationError(
            f"Objects directory not found: {objects_dir}. "
            "Run 'kibana-sync init' or 'kibana-sync pull' first."
        )
    return list_document_files(objects_dir)


def join_files(paths: list[Path], managed: bool = False) -> list[dict[str, Any]]:
    """Build bundle documents from per-object files.

    Args:
        paths: Files to join; processed in sorted order.
        managed: Set ``managed: true`` on every document so Kibana locks
            it against edits in the UI.  When false documents are left as
            they are on disk.
    """
    docs: list[dict[str, Any]] = []
    for path in sorted(paths):
        doc = load_document(path)
        if managed:
            doc["managed"] = True
        docs.append(escape_paths(doc, ESCAPED_JSON_PATHS))
    return docs
