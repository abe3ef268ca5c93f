"""Pydantic models for the manifest and bundle reconciliation engine.

Defines the data contracts used across all sync modules:

- ``ObjectRef``: ``(type, id)`` identity of a saved object.
- ``Manifest``: the tracked reference set, also the export request body.
- ``SplitDocument``: one normalized document taken out of a bundle.
- ``PullResult``: outcome of an export written into the local mirror.
- ``ImportOutcome``: outcome of a bundle import.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..errors import ConfigurationError


class ObjectRef(BaseModel):
    """Identity of a saved object.  Equality is by ``(type, id)``."""

    type: str
    id: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, pair: str) -> ObjectRef:
        """Build a reference from ``type=id`` command-line syntax.

        Raises:
            ConfigurationError: If either side of the ``=`` is empty.
        """
        obj_type, sep, obj_id = pair.partition("=")
        if not sep or not obj_type.strip() or not obj_id.strip():
            raise ConfigurationError(
                f"Invalid object reference '{pair}': expected type=id"
            )
        return cls(type=obj_type.strip(), id=obj_id.strip())

    def sort_key(self) -> tuple[str, str]:
        return (self.type, self.id)

    def __str__(self) -> str:
        return f"{self.type}={self.id}"


class Manifest(BaseModel):
    """The tracked reference set of a local repository.

    The serialized form doubles as the body of an export request, hence
    the camelCase aliases.

    Attributes:
        objects: Tracked references, sorted by ``(type, id)`` once merged.
        exclude_export_details: Ask Kibana to omit the trailing summary line.
        include_references_deep: Ask Kibana for the reference closure.
    """

    objects: list[ObjectRef] = []
    exclude_export_details: bool = Field(
        default=True, alias="excludeExportDetails"
    )
    include_references_deep: bool = Field(
        default=True, alias="includeReferencesDeep"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SplitDocument(BaseModel):
    """One document of a bundle, ready to be written to its own file.

    Attributes:
        ref: Identity of the document.
        document: Normalized document with JSON-in-string fields unescaped.
        title: Display name pulled from the document, if any.
    """

    ref: ObjectRef
    document: dict[str, Any]
    title: str | None = None

    model_config = {"frozen": True}


class PullResult(BaseModel):
    """Outcome of exporting objects into the local mirror.

    Attributes:
        documents: Number of documents in the exported bundle.
        files: Number of object files written.
        added_count: Manifest entries added by the merge.
        total: Manifest size after the merge.
    """

    documents: int
    files: int
    added_count: int
    total: int

    model_config = {"frozen": True}

    def summary(self) -> str:
        return (
            f"Exported {self.documents} objects, wrote {self.files} files, "
            f"added {self.added_count} objects to manifest ({self.total} tracked)"
        )


class ImportOutcome(BaseModel):
    """Outcome of importing a bundle.

    Attributes:
        submitted: Number of documents sent.
        success: Kibana's own pass/fail flag.
        success_count: Documents Kibana reports as imported.
        errors: Per-object error entries from the response.
    """

    submitted: int
    success: bool
    success_count: int
    errors: list[dict[str, Any]] = []

    model_config = {"frozen": True}

    @property
    def partial(self) -> bool:
        """True when Kibana succeeded but imported fewer objects than sent."""
        return self.success and self.success_count < self.submitted

    def summary(self) -> str:
        return f"{self.success_count} of {self.submitted} objects imported"
