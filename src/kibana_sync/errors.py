"""
Exceptions raised by kibana_sync.

Every error the command line reports to the user derives from
``KibanaSyncError``; anything else is a bug.
"""

from __future__ import annotations

from pathlib import Path


class KibanaSyncError(Exception):
    """Base exception for all kibana_sync errors."""


class ConfigurationError(KibanaSyncError):
    """
    Local setup is unusable.

    Raised when:
    - The credentials file is missing
    - Required connection settings are absent or malformed
    - The manifest or objects directory does not exist
    """


class ManifestMissing(ConfigurationError):
    """The master manifest does not exist on disk."""

    def __init__(self, path: Path):
        super().__init__(
            f"Manifest not found: {path}. Run 'kibana-sync init' first."
        )
        self.path = path


class PatchMissing(ConfigurationError):
    """The manifest patch to merge does not exist on disk."""

    def __init__(self, path: Path):
        super().__init__(f"Manifest patch not found: {path}")
        self.path = path


class RemoteError(KibanaSyncError):
    """
    Kibana rejected a request or could not be reached.

    ``status_code``, ``error`` and ``message`` are copied verbatim from the
    error envelope when Kibana returned one.  ``raw`` keeps the undecoded
    response body and ``response_path`` points at the file it was saved to,
    if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        raw: str | None = None,
        response_path: Path | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error
        self.raw = raw
        self.response_path = response_path

    def __str__(self) -> str:
        text = self.message
        if self.status_code is not None:
            prefix = f"{self.status_code}"
            if self.error:
                prefix += f" {self.error}"
            text = f"{prefix}: {text}"
        if self.response_path is not None:
            text += f" (response saved to {self.response_path})"
        return text


class EncodingInvariantViolation(KibanaSyncError):
    """
    A record could not be decoded or lacks its identity fields.

    Callers building a manifest patch catch this and skip the record.
    """
