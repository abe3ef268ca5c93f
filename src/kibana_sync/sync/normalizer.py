"""Strip server-assigned fields so exported documents diff cleanly."""

from __future__ import annotations

from typing import Any

VOLATILE_FIELDS: frozenset[str] = frozenset(
    {
        "created_at",
        "created_by",
        "count",
        "managed",
        "updated_at",
        "updated_by",
        "version",
    }
)


def normalize_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *doc* without the top-level volatile fields.

    Key order of the remaining fields is preserved and ``attributes`` is
    never inspected, so the function is idempotent.
    """
    return {k: v for k, v in doc.items() if k not in VOLATILE_FIELDS}


def normalize_bundle(docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [normalize_document(doc) for doc in docs]
