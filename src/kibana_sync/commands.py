"""Command pipelines.

Each command is one linear pipeline over a ``RepoContext`` and the parsed
arguments, returning the process exit code.  Errors propagate as
``KibanaSyncError`` and are reported by the CLI.
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import Config
from .core.client import KibanaClient
from .errors import ConfigurationError
from .file_handler import staging_dir
from .sync.exporter import DEFAULT_INIT_TYPES, ExportOrchestrator
from .sync.importer import ImportOrchestrator
from .sync.manifest import ManifestStore, patch_from_refs
from .sync.summarizer import DiffSummarizer, SummarizerClient, collect_git_diff

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """Commands understood by ``kibana-sync``."""

    INIT = "init"
    AUTH = "auth"
    PULL = "pull"
    PUSH = "push"
    ADD = "add"
    TOGO = "togo"
    DIFF = "diff"
    HELP = "help"


@dataclass(frozen=True)
class RepoContext:
    """Everything a command needs, resolved once per invocation."""

    config: Config
    client: KibanaClient
    manifest_store: ManifestStore
    objects_dir: Path

    @classmethod
    def from_config(cls, config: Config) -> RepoContext:
        return cls(
            config=config,
            client=KibanaClient(config),
            manifest_store=ManifestStore(config.manifest_path),
            objects_dir=config.objects_dir,
        )


# ------------------------------------------------------------------
# Export side
# ------------------------------------------------------------------


def cmd_init(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Create the manifest and object files from a fresh export."""
    if ctx.manifest_store.exists():
        raise ConfigurationError(
            f"Manifest already exists: {ctx.manifest_store.path}. "
            "Use 'kibana-sync add' or 'kibana-sync pull' instead."
        )

    with staging_dir(keep=ctx.config.keep_temp) as staging:
        exporter = ExportOrchestrator(ctx.client, staging)
        if args.refs:
            docs = exporter.export_refs(list(patch_from_refs(args.refs).objects))
        else:
            types = args.types or list(DEFAULT_INIT_TYPES)
            logger.info("Exporting all objects of types: %s", ", ".join(types))
            docs = exporter.export_types(types)
        result = exporter.apply_bundle(
            docs, ctx.objects_dir, ctx.manifest_store, create=True
        )

    print(result.summary())
    return 0


def cmd_add(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Start tracking objects (and everything they reference)."""
    patch = patch_from_refs(args.refs)
    ctx.manifest_store.load()

    with staging_dir(keep=ctx.config.keep_temp) as staging:
        exporter = ExportOrchestrator(ctx.client, staging)
        docs = exporter.export_refs(list(patch.objects))
        result = exporter.apply_bundle(docs, ctx.objects_dir, ctx.manifest_store)

    print(f"added {result.added_count} objects")
    return 0


def cmd_pull(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Refresh every tracked object from Kibana."""
    manifest = ctx.manifest_store.load()

    with staging_dir(keep=ctx.config.keep_temp) as staging:
        exporter = ExportOrchestrator(ctx.client, staging)
        docs = exporter.export_manifest(manifest)
        result = exporter.apply_bundle(docs, ctx.objects_dir, ctx.manifest_store)

    print(result.summary())
    return 0


# ------------------------------------------------------------------
# Import side
# ------------------------------------------------------------------


def _push(ctx: RepoContext, managed: bool) -> int:
    with staging_dir(keep=ctx.config.keep_temp) as staging:
        outcome = ImportOrchestrator(ctx.client, staging).push(
            ctx.objects_dir, managed=managed
        )
    print(outcome.summary())
    return 0


def cmd_push(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Import the mirror unchanged."""
    return _push(ctx, managed=False)


def cmd_togo(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Import the mirror with every object marked managed (read-only in the UI)."""
    return _push(ctx, managed=True)


# ------------------------------------------------------------------
# Misc
# ------------------------------------------------------------------


def cmd_auth(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Check the credentials against the configured space."""
    space = ctx.client.get_space()
    print(
        f"Authenticated to {ctx.config.kibana_url} "
        f"({ctx.config.auth_mode}), space '{ctx.config.space}'"
    )
    print(f"  name: {space.get('name', '')}")
    if space.get("description"):
        print(f"  description: {space['description']}")
    return 0


def cmd_diff(ctx: RepoContext, args: argparse.Namespace) -> int:
    """Summarize the uncommitted (or given revision's) object changes."""
    diff_text = collect_git_diff(ctx.objects_dir, args.revision)
    summarizer = DiffSummarizer(
        SummarizerClient(
            ctx.config.llm_url,
            api_key=ctx.config.llm_api_key,
            model=ctx.config.llm_model,
            temperature=ctx.config.llm_temperature,
        ),
        chunk_lines=ctx.config.diff_chunk_lines,
    )
    with staging_dir(prefix="kibana-sync-diff-", keep=ctx.config.keep_temp) as staging:
        print(summarizer.summarize(diff_text, staging))
    return 0


def cmd_help(ctx: RepoContext | None, args: argparse.Namespace) -> int:
    args.parser.print_help()
    return 0


COMMANDS: dict[Command, Callable[[RepoContext, argparse.Namespace], int]] = {
    Command.INIT: cmd_init,
    Command.AUTH: cmd_auth,
    Command.PULL: cmd_pull,
    Command.PUSH: cmd_push,
    Command.ADD: cmd_add,
    Command.TOGO: cmd_togo,
    Command.DIFF: cmd_diff,
    Command.HELP: cmd_help,
}
