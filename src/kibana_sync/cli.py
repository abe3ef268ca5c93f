"""Command-line entry point for kibana-sync."""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .commands import COMMANDS, Command, RepoContext
from .config import load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import build_config, to_fallbacks
from .errors import ConfigurationError, KibanaSyncError
from .logger import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kibana-sync",
        description="Keep Kibana saved objects in a version-controlled local mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start a repository from every dashboard-related object in a space
  kibana-sync --space ops init

  # Track one dashboard and everything it references
  kibana-sync add dashboard=7adfa750-4c81-11e8-b3d7-01146121b73d

  # Refresh all tracked objects, then review the change
  kibana-sync pull && kibana-sync diff

  # Publish the mirror, locked against edits in the Kibana UI
  kibana-sync togo

Credentials are read from the file named by --env-file (default: .env):
  KIBANA_URL, KIBANA_SPACE, and KIBANA_APIKEY or KIBANA_USERNAME/KIBANA_PASSWORD.
        """,
    )
    parser.add_argument(
        "--env-file",
        help=f"Credentials file to load (default: {DEFAULT_ENV_FILE})",
    )
    parser.add_argument("--url", help="Override Kibana URL (KIBANA_URL)")
    parser.add_argument("--space", help="Kibana space id (KIBANA_SPACE)")
    parser.add_argument("--manifest", help="Manifest file (default: manifest.json)")
    parser.add_argument("--objects-dir", help="Objects directory (default: objects)")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--keep-temp",
        action="store_true",
        help="Keep staging directories (bundles, responses, diff chunks)",
    )
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log record format (default: text, or logging.format from config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"kibana-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_init = sub.add_parser(Command.INIT.value, help="Create the manifest from an export")
    p_init.add_argument("refs", nargs="*", metavar="TYPE=ID")
    p_init.add_argument(
        "--types",
        nargs="+",
        metavar="TYPE",
        help="Object types to export when no references are given",
    )

    sub.add_parser(Command.AUTH.value, help="Verify credentials and space")
    sub.add_parser(Command.PULL.value, help="Export tracked objects into the mirror")
    sub.add_parser(Command.PUSH.value, help="Import the mirror into Kibana")

    p_add = sub.add_parser(Command.ADD.value, help="Track objects and their references")
    p_add.add_argument("refs", nargs="+", metavar="TYPE=ID")

    sub.add_parser(
        Command.TOGO.value, help="Import the mirror as managed (read-only) objects"
    )

    p_diff = sub.add_parser(Command.DIFF.value, help="Summarize object changes")
    p_diff.add_argument(
        "revision",
        nargs="?",
        help="Revision or range to diff against (default: working tree vs index)",
    )

    sub.add_parser(Command.HELP.value, help="Show this help")

    parser.set_defaults(parser=parser)
    return parser


def _load_env_file(env_file: str | None) -> None:
    if env_file is not None:
        path = Path(env_file)
        if not path.is_file():
            raise ConfigurationError(f"Credentials file not found: {path}")
        load_dotenv(path)
        logger.debug("Loaded credentials from %s", path)
    elif Path(DEFAULT_ENV_FILE).is_file():
        load_dotenv(DEFAULT_ENV_FILE)
        logger.debug("Loaded credentials from %s", DEFAULT_ENV_FILE)


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = Command(args.command or Command.HELP.value)
    if command is Command.HELP:
        return COMMANDS[command](None, args)

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        _load_env_file(args.env_file)
        try:
            unified = build_config(load_hierarchical_config())
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config file: {e}") from e

        setup_logging(
            debug=args.debug,
            log_file=args.log_file or unified.logging.file,
            log_format=args.log_format or unified.logging.format,
            level=unified.logging.level,
        )
        config_files = discover_config_files()
        if config_files:
            logger.debug("Config file: %s", config_files[0])

        config = load_config(
            url=args.url,
            space=args.space,
            insecure=args.insecure,
            debug=args.debug,
            keep_temp=args.keep_temp,
            manifest=args.manifest,
            objects_dir=args.objects_dir,
            yaml_fallbacks=to_fallbacks(unified),
        )
        logger.debug(
            "Kibana %s, space %s, auth %s",
            config.kibana_url,
            config.space,
            config.auth_mode,
        )
        return COMMANDS[command](RepoContext.from_config(config), args)
    except KibanaSyncError as e:
        logger.debug("Command %s failed", command.value, exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
