# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

import toml
from dotenv import load_dotenv

from totalrecall.app import ClearTarget, clear, load_app_config, run_sync
from totalrecall.config import (
    ConfigParseError,
    ConfigurationError,
    StorageUnavailableError,
    configure_logging,
    get_storage_paths,
    load_config,
    verbosity_level,
)
from totalrecall.domain.model import DataType

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from totalrecall.config import StoragePaths
    from totalrecall.domain.sync import SyncResult

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130

OUTPUT_MODES = ("human", "json", "json-pretty")

_DATA_TYPE_FLAGS: dict[str, DataType] = {
    "watchlist": DataType.WATCHLIST,
    "ratings": DataType.RATINGS,
    "reviews": DataType.REVIEWS,
    "watch_history": DataType.WATCH_HISTORY,
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="totalrecall",
        description="Keep watchlists, ratings, reviews and watch history in step across media trackers",
    )
    parser.add_argument("--home", type=Path, help="Base directory for config, credentials and caches")
    parser.add_argument(
        "--output",
        choices=OUTPUT_MODES,
        default="human",
        help="Result format (default: %(default)s)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debug details")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run one synchronisation across all enabled sources")
    types = sync.add_argument_group("data types", "Restrict the run to these types (default: from config)")
    types.add_argument("--watchlist", action="store_true", help="Sync watchlists")
    types.add_argument("--ratings", action="store_true", help="Sync ratings")
    types.add_argument("--reviews", action="store_true", help="Sync reviews")
    types.add_argument("--watch-history", action="store_true", help="Sync watch history")
    sync.add_argument(
        "--force-full",
        action="store_true",
        help="Ignore last-sync timestamps and compare everything",
    )
    sync.add_argument(
        "--dry-run",
        metavar="SOURCE",
        action="append",
        default=[],
        help="Write what would be sent to SOURCE under the distribute cache instead of pushing (repeatable)",
    )
    sync.add_argument(
        "--use-cache",
        metavar="SOURCE",
        action="append",
        default=[],
        help="Read SOURCE from its last collect snapshot instead of the network (repeatable)",
    )

    clear_cmd = subparsers.add_parser("clear", help="Remove cached or stored state")
    clear_cmd.add_argument("target", choices=[target.value for target in ClearTarget])

    config = subparsers.add_parser("config", help="Inspect the configuration")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="Print the effective configuration with secrets masked")
    config_sub.add_parser("validate", help="Check the configuration and exit non-zero when invalid")

    return parser.parse_args(list(argv))


def _selected_data_types(args: argparse.Namespace) -> list[DataType] | None:
    selected = [data_type for flag, data_type in _DATA_TYPE_FLAGS.items() if getattr(args, flag)]
    return selected or None


def _emit(payload: dict[str, object], mode: str) -> None:
    if mode == "json":
        print(json.dumps(payload, default=str))
    else:
        print(json.dumps(payload, default=str, indent=2))


def _print_sync_result(result: SyncResult, mode: str) -> None:
    if mode != "human":
        _emit(result.to_dict(), mode)
        return
    if result.nothing_to_do:
        headline = "Nothing to do"
    elif result.has_failures:
        headline = f"Sync finished with errors: {result.items_synced} item(s) synced"
    else:
        headline = f"Sync finished: {result.items_synced} item(s) synced"
    print(f"{headline} in {result.duration_seconds:.1f}s")
    for name, report in result.per_source.items():
        flag = " (dry run)" if report.dry_run else ""
        print(
            f"  {name}{flag}: fetched={report.fetched} resolved={report.resolved} "
            f"pushed={report.pushed} failed={report.failed} skipped={report.skipped}"
        )
        for error in report.errors:
            print(f"    ! {error}")
    for error in result.errors:
        print(f"  ! {error}")


def _run_sync(args: argparse.Namespace, paths: StoragePaths) -> int:
    result = run_sync(
        data_types=_selected_data_types(args),
        force_full_sync=args.force_full,
        dry_run=args.dry_run,
        use_cache=args.use_cache,
        paths=paths,
    )
    _print_sync_result(result, args.output)
    return EXIT_FAILURE if result.has_failures else EXIT_OK


def _run_clear(args: argparse.Namespace, paths: StoragePaths) -> int:
    cleared = clear(ClearTarget(args.target), paths=paths)
    if args.output == "human":
        print(f"Cleared: {', '.join(cleared)}")
    else:
        _emit({"cleared": cleared}, args.output)
    return EXIT_OK


def _run_config(args: argparse.Namespace, paths: StoragePaths) -> int:
    if args.config_command == "validate":
        load_app_config(paths)
        if args.output == "human":
            print(f"Configuration OK: {paths.config_file}")
        else:
            _emit({"valid": True, "path": str(paths.config_file)}, args.output)
        return EXIT_OK

    document = load_config(paths.config_file).to_dict()
    if args.output == "human":
        print(toml.dumps(document), end="")
    else:
        _emit(document, args.output)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=verbosity_level(verbose=parsed_args.verbose, quiet=parsed_args.quiet), force=True)

    try:
        paths = get_storage_paths(parsed_args.home)
        if parsed_args.command == "sync":
            code = _run_sync(parsed_args, paths)
        elif parsed_args.command == "clear":
            code = _run_clear(parsed_args, paths)
        elif parsed_args.command == "config":
            code = _run_config(parsed_args, paths)
        else:
            raise argparse.ArgumentError(None, f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ConfigParseError, StorageUnavailableError):
        log.exception("Cannot read configuration or storage")
        sys.exit(EXIT_FAILURE)
    except (ConfigurationError, argparse.ArgumentError) as exc:
        log.error("Invalid configuration or arguments: %s", exc)  # noqa: TRY400
        if parsed_args.output != "human":
            _emit({"valid": False, "error": str(exc)}, parsed_args.output)
        sys.exit(EXIT_INVALID)
    except KeyboardInterrupt:
        log.info("Closed by user (Ctrl+C)")
        sys.exit(EXIT_INTERRUPTED)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(EXIT_FAILURE)
    sys.exit(code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    signal(SIGINT, sigint_handler)
    main()
