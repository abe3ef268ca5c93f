"""File handler module: encoding-aware reads, atomic writes, staging dirs.

Provides the file I/O infrastructure shared by the manifest store, the
bundle reconciler and the import/export orchestrators.  Every write that
lands in the tracked repository goes through ``write_file_atomic`` so an
interrupted run never leaves a half-written manifest or object file.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    logger.debug("Detected %s encoding for %s", result.encoding, path)
    return (str(result), result.encoding)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_file_atomic(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write *content* to *path* via a temp file and ``os.replace()``.

    The temp file lives in the target's directory so the final rename is
    atomic.  Parent directories are created as needed.  On any failure the
    temp file is removed and the previous target (if any) is untouched.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        # mkstemp creates 0600; repository files follow the umask
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


# =============================================================================
# Staging directories
# =============================================================================


@dataclass
class StagingDir:
    """A per-command scratch directory.

    Attributes:
        path: The directory itself.
        preserved: Set by ``preserve()`` when its contents must survive the
            command (for example a failed import response).
    """

    path: Path
    preserved: bool = False

    def preserve(self) -> None:
        self.preserved = True

    def file(self, name: str) -> Path:
        return self.path / name


@contextmanager
def staging_dir(prefix: str = "kibana-sync-", keep: bool = False) -> Iterator[StagingDir]:
    """Create a temporary directory scoped to one command invocation.

    The directory is removed when the block exits unless *keep* is set or
    the block called ``StagingDir.preserve()``.

    Args:
        prefix: Directory name prefix.
        keep: Retain the directory for inspection (``--keep-temp``).
    """
    staging = StagingDir(Path(tempfile.mkdtemp(prefix=prefix)))
    logger.debug("Created staging directory %s", staging.path)
    try:
        yield staging
    finally:
        if keep or staging.preserved:
            logger.info("Keeping temporary files in %s", staging.path)
        else:
            shutil.rmtree(staging.path, ignore_errors=True)
