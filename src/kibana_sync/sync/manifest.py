"""Manifest persistence and merge.

The manifest (``manifest.json`` by default) lists the saved objects a
local repository tracks.  Its JSON form is exactly the body of an export
request::

    {"objects": [{"type": "dashboard", "id": "a"}, ...],
     "excludeExportDetails": true,
     "includeReferencesDeep": true}

Key design choices:

* **Merge dedupes by id only** -- two objects of different types that
  share an id collapse into whichever was seen first (master before
  patch).
* **Canonical order** -- after every merge objects are sorted by
  ``(type, id)`` using plain string comparison.
* **Atomic writes** -- ``save()`` goes through ``write_file_atomic``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..errors import (
    ConfigurationError,
    EncodingInvariantViolation,
    ManifestMissing,
    PatchMissing,
)
from ..file_handler import write_file_atomic
from .codec import document_ref
from .models import Manifest, ObjectRef

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Merge
# ------------------------------------------------------------------


def dedupe_and_sort(refs: Iterable[ObjectRef]) -> list[ObjectRef]:
    """Drop repeated ids (first one wins) and sort by ``(type, id)``."""
    seen: set[str] = set()
    unique: list[ObjectRef] = []
    for ref in refs:
        if ref.id in seen:
            continue
        seen.add(ref.id)
        unique.append(ref)
    return sorted(unique, key=ObjectRef.sort_key)


def merge_manifests(master: Manifest, patch: Manifest) -> tuple[Manifest, int]:
    """Merge *patch* into *master*.

    The flags of *master* are kept; only the object list changes.

    Returns:
        ``(merged, added_count)`` where *added_count* is the growth of the
        object list.
    """
    objects = dedupe_and_sort([*master.objects, *patch.objects])
    merged = master.model_copy(update={"objects": objects})
    return merged, len(objects) - len(master.objects)


# ------------------------------------------------------------------
# Patch construction
# ------------------------------------------------------------------


def patch_from_refs(pairs: Iterable[str]) -> Manifest:
    """Build a patch from ``type=id`` strings, keeping input order."""
    return Manifest(objects=[ObjectRef.parse(pair) for pair in pairs])


def patch_from_bundle(docs: Iterable[dict[str, Any]]) -> Manifest:
    """Build a patch listing every document of an exported bundle.

    Each document contributes ``(type, originId or id)``.  Records without
    identity (such as the export summary line) are skipped.  The result is
    deduplicated and sorted exactly like a merge against an empty master.
    """
    refs: list[ObjectRef] = []
    skipped = 0
    for doc in docs:
        try:
            refs.append(document_ref(doc, prefer_origin=True))
        except EncodingInvariantViolation as exc:
            skipped += 1
            logger.debug("Excluding record from manifest patch: %s", exc)
    if skipped:
        logger.debug("Skipped %d records without identity", skipped)
    merged, _ = merge_manifests(Manifest(), Manifest(objects=refs))
    return merged


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


def read_manifest(path: Path) -> Manifest:
    """Parse a manifest file.

    Raises:
        ConfigurationError: If the file is not a valid manifest.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return Manifest.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid manifest {path}: {exc}") from exc


def write_manifest(path: Path, manifest: Manifest) -> None:
    write_file_atomic(
        path, json.dumps(manifest.to_json_dict(), indent=2) + "\n"
    )


class ManifestStore:
    """Load and save the master manifest of a repository.

    Args:
        path: Location of the manifest file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Manifest:
        """Load the manifest.

        Raises:
            ManifestMissing: If the file does not exist.
        """
        if not self.exists():
            raise ManifestMissing(self.path)
        return read_manifest(self.path)

    def save(self, manifest: Manifest) -> None:
        write_manifest(self.path, manifest)
        logger.debug(
            "Saved manifest %s (%d objects)", self.path, len(manifest.objects)
        )

    def merge(self, patch: Manifest) -> tuple[Manifest, int]:
        """Merge *patch* into the stored manifest and persist the result."""
        merged, added = merge_manifests(self.load(), patch)
        self.save(merged)
        logger.info(
            "Added %d objects to manifest (%d tracked)",
            added,
            len(merged.objects),
        )
        return merged, added


def merge_manifest_files(master_path: Path, patch_path: Path) -> int:
    """Merge the manifest at *patch_path* into the one at *master_path*.

    Returns:
        Number of objects added to the master.

    Raises:
        ManifestMissing: If *master_path* does not exist.
        PatchMissing: If *patch_path* does not exist.
    """
    store = ManifestStore(master_path)
    if not store.exists():
        raise ManifestMissing(master_path)
    if not patch_path.is_file():
        raise PatchMissing(patch_path)
    _, added = store.merge(read_manifest(patch_path))
    return added
