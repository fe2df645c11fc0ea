#!/usr/bin/env python3
"""Obsidian -> Anki synchronization CLI.

Subcommands:
  import  Write one template note per Anki note type into <templates>/anki/
  sync    Push managed vault notes (and their media) to Anki

Usage examples:
  bin/anki_sync_cli.py import --vault ~/notes
  bin/anki_sync_cli.py sync --vault ~/notes --scan-dir Languages --log-level INFO
  bin/anki_sync_cli.py sync --vault ~/notes --no-render --highlight-as-cloze
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# 스크립트 위치 기반 경로 상수
_SCRIPT_DIR = Path(__file__).resolve().parent

# Ensure bin/ is on sys.path so local package imports resolve without PYTHONPATH
if str(_SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(_SCRIPT_DIR))

from ankiconnect_client.exceptions import AnkiConnectionError, AnkiError
from sync_engine.config import Config, ConfigError
from sync_engine.state import SyncReport
from sync_engine.synchronizer import AnkiSynchronizer


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--vault", default=".", help="Path to the Obsidian vault (default: %(default)s)")
    parser.add_argument("--vault-name", default=None,
                        help="Vault name used in obsidian:// links (default: vault directory name)")
    parser.add_argument("--anki-url", default=None,
                        help="AnkiConnect URL (default: $ANKI_CONNECT_URL or http://127.0.0.1:8765)")
    parser.add_argument("--templates-folder", default=None,
                        help="Templates folder (default: read from .obsidian/templates.json)")
    parser.add_argument("--heading-level", type=int, default=1,
                        help="Heading level that separates fields (default: %(default)s)")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Set the logging level (default: %(default)s)")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Synchronize Obsidian notes with Anki through AnkiConnect")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import Anki note types as template notes")
    _add_common_arguments(imp)

    sync = sub.add_parser("sync", help="Synchronize vault notes to Anki")
    _add_common_arguments(sync)
    sync.add_argument("--scan-dir", action="append", default=[], dest="scan_dir",
                      help="Only scan this vault folder (repeatable; default: whole vault)")
    sync.add_argument("--no-render", action="store_false", dest="render",
                      help="Send Markdown to Anki instead of rendered HTML")
    sync.add_argument("--no-linkify", action="store_false", dest="linkify",
                      help="Do not turn the title field into an obsidian:// link")
    sync.add_argument("--highlight-as-cloze", action="store_true",
                      help="Convert ==highlights== into cloze deletions")
    return parser


def _config_from_args(args: argparse.Namespace) -> Config:
    return Config(
        vault_path=str(args.vault),
        vault_name=args.vault_name,
        anki_connect_url=args.anki_url,
        templates_folder=args.templates_folder,
        heading_level=args.heading_level,
        render=getattr(args, "render", True),
        linkify=getattr(args, "linkify", True),
        highlight_as_cloze=getattr(args, "highlight_as_cloze", False),
        scan_directories=list(getattr(args, "scan_dir", None) or []),
    )


def _print_report(command: str, report: SyncReport) -> None:
    print(f"[{command}] {report.summary()}")
    for item, reason in report.skipped:
        print(f"  skipped {item}: {reason}")
    for failure in report.failures:
        print(f"  failed {failure}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s - %(filename)s:%(lineno)d - %(message)s',
        stream=sys.stderr
    )
    logger = logging.getLogger(__name__)

    try:
        config = _config_from_args(args)
        synchronizer = AnkiSynchronizer(config, logger=logger)
        synchronizer.load()
        if args.command == "import":
            report = synchronizer.import_note_types()
        elif args.command == "sync":
            report = synchronizer.synchronize()
        else:
            parser.print_help()
            return 2
    except ConfigError as e:
        print(f"[{args.command}] configuration error: {e}", file=sys.stderr)
        return 2
    except (AnkiConnectionError, AnkiError) as e:
        print(f"[{args.command}] AnkiConnect error: {e}", file=sys.stderr)
        return 2

    _print_report(args.command, report)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
