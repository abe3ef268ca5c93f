"""NDJSON bundle codec.

Kibana exports and imports saved objects as NDJSON: one compact JSON
document per line.  Several attributes hold JSON encoded *as a string*
(dashboard panels, search source, visualization state, ...); stored
verbatim they make every diff a single unreadable line.  This module
unescapes those attributes into structured JSON for the per-object files
and escapes them back for import.

``unescape_paths`` only expands a string when re-encoding the parsed value
compactly gives back the identical string, so ``escape_paths`` is always
its exact inverse.  Anything else stays an opaque string.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

from ..errors import EncodingInvariantViolation
from ..file_handler import read_file_with_encoding, write_file_atomic
from .models import ObjectRef

logger = logging.getLogger(__name__)

ESCAPED_JSON_PATHS: tuple[str, ...] = (
    "attributes.panelsJSON",
    "attributes.optionsJSON",
    "attributes.uiStateJSON",
    "attributes.visState",
    "attributes.kibanaSavedObjectMeta.searchSourceJSON",
    "attributes.fieldFormatMap",
    "attributes.fields",
    "attributes.fieldAttrs",
    "attributes.runtimeFieldMap",
    "attributes.sourceFilters",
    "attributes.controlGroupInput.panelsJSON",
    "attributes.controlGroupInput.ignoreParentSettingsJSON",
    "attributes.layerListJSON",
    "attributes.mapStateJSON",
)

NAME_FIELDS: tuple[str, ...] = ("attributes.title", "attributes.name")


# ------------------------------------------------------------------
# NDJSON
# ------------------------------------------------------------------


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def parse_bundle(text: str) -> list[dict[str, Any]]:
    """Decode NDJSON text into documents.  Blank lines are ignored.

    Raises:
        EncodingInvariantViolation: If a line is not a JSON object.
    """
    docs: list[dict[str, Any]] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            doc = json.loads(line)
        except json.JSONDecodeError as exc:
            raise EncodingInvariantViolation(
                f"Bundle line {lineno} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(doc, dict):
            raise EncodingInvariantViolation(
                f"Bundle line {lineno} is not a JSON object"
            )
        docs.append(doc)
    return docs


def dump_bundle(docs: list[dict[str, Any]]) -> str:
    """Encode documents as NDJSON with a trailing newline."""
    return "".join(_compact(doc) + "\n" for doc in docs)


def read_bundle(path: Path) -> list[dict[str, Any]]:
    content, _ = read_file_with_encoding(path)
    return parse_bundle(content)


def write_bundle(path: Path, docs: list[dict[str, Any]]) -> int:
    return write_file_atomic(path, dump_bundle(docs))


# ------------------------------------------------------------------
# Identity
# ------------------------------------------------------------------


def document_ref(doc: dict[str, Any], prefer_origin: bool = False) -> ObjectRef:
    """Return the ``(type, id)`` of a document.

    With *prefer_origin*, a non-empty ``originId`` stands in for ``id``;
    copied objects keep pointing at the object they were created from.

    Raises:
        EncodingInvariantViolation: If type or id is missing or not a string.
    """
    obj_type = doc.get("type")
    obj_id = doc.get("originId") if prefer_origin else None
    if not obj_id:
        obj_id = doc.get("id")
    if not isinstance(obj_type, str) or not obj_type:
        raise EncodingInvariantViolation(f"Record has no type: {_preview(doc)}")
    if not isinstance(obj_id, str) or not obj_id:
        raise EncodingInvariantViolation(f"Record has no id: {_preview(doc)}")
    return ObjectRef(type=obj_type, id=obj_id)


def _preview(doc: dict[str, Any], limit: int = 80) -> str:
    text = _compact(doc)
    return text if len(text) <= limit else text[: limit - 3] + "..."


# ------------------------------------------------------------------
# Dotted paths
# ------------------------------------------------------------------


def get_path(doc: dict[str, Any], dotted: str) -> Any:
    """Return the value at *dotted* (``a.b.c``), or ``None`` if absent."""
    node: Any = doc
    for key in dotted.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _set_path(doc: dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    node = doc
    for key in parents:
        node = node[key]
    node[leaf] = value


def unescape_paths(doc: dict[str, Any], paths=ESCAPED_JSON_PATHS) -> dict[str, Any]:
    """Return a copy of *doc* with JSON-in-string attributes expanded."""
    result = copy.deepcopy(doc)
    for dotted in paths:
        raw = get_path(result, dotted)
        if not isinstance(raw, str):
            continue
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, (dict, list)):
            continue
        if _compact(parsed) != raw:
            logger.debug("Leaving %s escaped: not in compact form", dotted)
            continue
        _set_path(result, dotted, parsed)
    return result


def escape_paths(doc: dict[str, Any], paths=ESCAPED_JSON_PATHS) -> dict[str, Any]:
    """Return a copy of *doc* with expanded attributes folded back to strings."""
    result = copy.deepcopy(doc)
    for dotted in paths:
        value = get_path(result, dotted)
        if isinstance(value, (dict, list)):
            _set_path(result, dotted, _compact(value))
    return result


def extract_name(doc: dict[str, Any], name_fields=NAME_FIELDS) -> str | None:
    """Return the first non-empty string found at *name_fields*."""
    for dotted in name_fields:
        value = get_path(doc, dotted)
        if isinstance(value, str) and value:
            return value
    return None


# ------------------------------------------------------------------
# Per-object files
# ------------------------------------------------------------------


def object_filename(obj_type: str, obj_id: str) -> Path:
    """Relative file path for an object: ``<type>/<id>.json``.

    Characters outside ``[A-Za-z0-9_.-~]`` are percent-encoded so ids can
    never escape their type directory.
    """
    return Path(quote(obj_type, safe="")) / f"{quote(obj_id, safe='')}.json"


def dump_document(doc: dict[str, Any]) -> str:
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


def load_document(path: Path) -> dict[str, Any]:
    """Read one per-object file.

    Raises:
        EncodingInvariantViolation: If the file is not a JSON object.
    """
    content, _ = read_file_with_encoding(path)
    try:
        doc = json.loads(content)
    except json.JSONDecodeError as exc:
        raise EncodingInvariantViolation(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise EncodingInvariantViolation(f"{path} does not hold a JSON object")
    return doc


def list_document_files(directory: Path) -> list[Path]:
    """All ``*.json`` files below *directory*, in lexicographic order."""
    return sorted(p for p in directory.rglob("*.json") if p.is_file())


def unbundle(
    bundle_path: Path,
    out_dir: Path,
    name_fields=NAME_FIELDS,
    type_field: str = "type",
    escaped_paths=ESCAPED_JSON_PATHS,
) -> list[Path]:
    """Split a bundle file into one file per document under *out_dir*.

    Records lacking *type_field* or ``id`` are skipped.  Existing files for
    the same object are overwritten.
    """
    written: list[Path] = []
    for doc in read_bundle(bundle_path):
        obj_type = doc.get(type_field)
        obj_id = doc.get("id")
        if not isinstance(obj_type, str) or not isinstance(obj_id, str):
            logger.debug("Skipping record without identity: %s", _preview(doc))
            continue
        target = out_dir / object_filename(obj_type, obj_id)
        write_file_atomic(target, dump_document(unescape_paths(doc, escaped_paths)))
        logger.debug("Wrote %s (%s)", target, extract_name(doc, name_fields) or obj_id)
        written.append(target)
    return written


def bundle(in_dir: Path, bundle_path: Path, escaped_paths=ESCAPED_JSON_PATHS) -> int:
    """Join every per-document file under *in_dir* into a bundle file.

    Returns:
        Number of documents written.
    """
    docs = [
        escape_paths(load_document(path), escaped_paths)
        for path in list_document_files(in_dir)
    ]
    write_bundle(bundle_path, docs)
    return len(docs)
