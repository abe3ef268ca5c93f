"""Summarize a git diff of the objects directory in plain language.

The diff is cut into fixed-size line chunks (``chunk_diff``) and each
chunk is sent, in order, to an OpenAI-compatible chat completions endpoint
with the same system instruction.  Non-empty answers are joined with a
newline.  Chunks ignore hunk boundaries, so a change that straddles two
chunks may be described twice or inconsistently.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any

import requests

from ..errors import ConfigurationError, RemoteError
from ..file_handler import StagingDir, write_file_atomic

logger = logging.getLogger(__name__)

NO_CHANGES = "No changes."

SYSTEM_INSTRUCTION = (
    "You summarize changes to Kibana saved objects (dashboards, "
    "visualizations, saved searches, data views) for the people who use "
    "them. Describe what changed in user-facing terms: panels added or "
    "removed, titles, queries, filters, fields and time ranges. Do not "
    "mention object ids, file paths, commit hashes or JSON structure. "
    "Answer with a short bullet list."
)


def chunk_diff(text: str, chunk_lines: int = 300) -> list[str]:
    """Split *text* into chunks of at most *chunk_lines* lines.

    Lines end at ``\\n`` only, as git emits them; other line-break characters
    inside JSON strings stay part of their line.  Line endings are kept, so
    ``"".join(chunk_diff(t)) == t``.
    """
    if chunk_lines < 1:
        raise ValueError("chunk_lines must be at least 1")
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return [
        "".join(lines[i : i + chunk_lines])
        for i in range(0, len(lines), chunk_lines)
    ]


class SummarizerClient:
    """Minimal chat completions client.

    Args:
        url: Full chat completions endpoint URL.
        api_key: Bearer token, if the endpoint needs one.
        model: Model name sent with every request.
        temperature: Sampling temperature.
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.2,
    ) -> None:
        self.url = url
        self.model = model
        self.temperature = temperature
        self.session = requests.Session()
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def complete(self, messages: list[dict[str, str]]) -> str:
        """Send one chat request and return the first choice's text.

        Raises:
            RemoteError: On transport failure, HTTP error or a response
                without ``choices``.
        """
        payload: dict[str, Any] = {
            "messages": messages,
            "temperature": self.temperature,
        }
        if self.model:
            payload["model"] = self.model
        try:
            response = self.session.post(self.url, json=payload, timeout=(10, 120))
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise RemoteError(f"Summarizer request failed: {e}") from e
        except ValueError as e:
            raise RemoteError(f"Summarizer returned invalid JSON: {e}") from e

        try:
            content = body["choices"][0]["message"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            raise RemoteError(
                "Summarizer response has no choices", raw=response.text
            ) from None
        return (content or "").strip()


class DiffSummarizer:
    """Turn a diff into a human-readable summary, one chunk at a time."""

    def __init__(self, client: SummarizerClient, chunk_lines: int = 300) -> None:
        self.client = client
        self.chunk_lines = chunk_lines

    def summarize(self, diff_text: str, staging: StagingDir | None = None) -> str:
        if not diff_text.strip():
            logger.info("Diff is empty, nothing to summarize")
            return NO_CHANGES

        chunks = chunk_diff(diff_text, self.chunk_lines)
        logger.info("Summarizing diff in %d chunks", len(chunks))

        summaries: list[str] = []
        for index, chunk in enumerate(chunks):
            if staging is not None:
                write_file_atomic(staging.file(f"diff_chunk_{index:03d}.txt"), chunk)
            text = self.client.complete(
                [
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": chunk},
                ]
            )
            if not text:
                logger.debug("Chunk %d produced an empty summary", index)
                continue
            summaries.append(text)
        return "\n".join(summaries)


def collect_git_diff(objects_dir: Path, revision: str | None = None) -> str:
    """Return ``git diff`` output for *objects_dir*.

    Without *revision* the working tree is compared with the index; pass
    ``HEAD`` (or any revision/range) to compare against a commit.

    Raises:
        ConfigurationError: If git is unavailable or the directory is not
            inside a repository.
    """
    cmd = ["git", "diff", "--no-color"]
    if revision:
        cmd.append(revision)
    cmd += ["--", objects_dir.name]
    try:
        result = subprocess.run(
            cmd,
            cwd=str(objects_dir.resolve().parent),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise ConfigurationError("git executable not found") from e

    if result.returncode != 0:
        raise ConfigurationError(
            f"git diff failed: {result.stderr.strip() or result.returncode}"
        )
    return result.stdout
