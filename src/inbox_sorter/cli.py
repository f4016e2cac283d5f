"""Command-line entry point for Inbox Sorter."""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence
from pathlib import Path

from inbox_sorter.core import AppSettings, configure_logging, load_app_settings
from inbox_sorter.core.errors import InboxSorterError, MailConnectionError
from inbox_sorter.core.models import SortReport
from inbox_sorter.mailbox.folders import FolderDirectory, is_category_candidate
from inbox_sorter.sorting import SortingOrchestrator, build_orchestrator
from inbox_sorter.sorting.factory import build_session_factory

COMMANDS = (
    "info",
    "folders",
    "sort",
    "sort-all",
    "sort-all-folders",
    "sort-category",
    "classify",
    "invoices",
    "digest",
)


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Sort IMAP mail into folders")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=COMMANDS,
        help="Operation to execute.",
    )
    parser.add_argument(
        "--folder",
        default=None,
        help="Folder to read from (default: the configured source folder).",
    )
    parser.add_argument(
        "--category",
        default=None,
        help="Target category for the sort-category command.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Keep at most this many of the newest matches per folder.",
    )
    parser.add_argument(
        "--all",
        dest="include_read",
        action="store_true",
        help="Include read messages for sort-all-folders, classify and invoices.",
    )
    parser.add_argument(
        "--all-folders",
        action="store_true",
        help="Cover every folder instead of one (digest command).",
    )
    parser.add_argument(
        "--today",
        action="store_true",
        help="Only sort unread messages received today (sort command).",
    )
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the run report as JSON.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit status."""
    command = args.command
    if command == "info":
        print("Inbox Sorter is ready. Configure IMAP and LLM settings to sort mail.")
        print(f"IMAP host: {settings.imap.host}:{settings.imap.port}")
        print(f"Source folder: {settings.imap.source_folder}")
        print(f"LLM: {settings.llm.provider.value} {settings.llm.model}")
        print(f"Fallback category: {settings.sorting.fallback_category}")
        return 0
    if command == "folders":
        return _list_folders(settings)
    if args.limit is not None and args.limit <= 0:
        print("--limit must be positive")
        return 2

    orchestrator = build_orchestrator(settings)
    if command == "sort-category":
        return _sort_category(orchestrator, args)
    if command == "invoices":
        outcome = orchestrator.analyze_invoices(
            args.folder,
            only_unread=not args.include_read,
            limit=args.limit,
        )
        if args.as_json:
            print(json.dumps(outcome.to_dict(), indent=2, default=str))
        else:
            _print_report(outcome.report)
            for invoice in outcome.invoices:
                detail = invoice.error or (
                    invoice.data.model_dump_json() if invoice.data else "-"
                )
                print(f"  UID {invoice.uid} {invoice.subject!r}: {detail}")
        return 0 if outcome.report.success else 1
    if command == "digest":
        return _digest(orchestrator, args)

    report = _run_report(orchestrator, args)
    if args.as_json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)
    return 0 if report.success else 1


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


def _run_report(
    orchestrator: SortingOrchestrator, args: argparse.Namespace
) -> SortReport:
    command = args.command
    if command == "sort":
        if args.today:
            return orchestrator.sort_today_in_folder(args.folder, limit=args.limit)
        return orchestrator.sort_unread_in_folder(args.folder, limit=args.limit)
    if command == "sort-all":
        return orchestrator.sort_all_in_folder(args.folder, limit=args.limit)
    if command == "sort-all-folders":
        if args.include_read:
            return orchestrator.sort_all_across_all_folders(limit=args.limit)
        return orchestrator.sort_unread_across_all_folders(limit=args.limit)
    if args.folder is None:
        return orchestrator.classify_all_across_all_folders(
            only_unread=not args.include_read, limit=args.limit
        )
    if args.include_read:
        print("--all is ignored when classifying a single folder")
    return orchestrator.classify_unread_in_folder(args.folder, limit=args.limit)


def _sort_category(
    orchestrator: SortingOrchestrator, args: argparse.Namespace
) -> int:
    if not args.category:
        print("sort-category requires --category")
        return 2
    try:
        moved = orchestrator.sort_into_specific_category(args.folder, args.category)
    except MailConnectionError as exc:
        print(f"Connection failed: {exc}")
        return 1
    except InboxSorterError as exc:
        print(f"Sorting failed: {exc}")
        return 1
    print(f"Moved {moved} message(s) into '{args.category}'.")
    return 0


def _digest(orchestrator: SortingOrchestrator, args: argparse.Namespace) -> int:
    outcome = orchestrator.digest_today(
        args.folder, all_folders=args.all_folders, limit=args.limit
    )
    if args.as_json:
        print(json.dumps(outcome.to_dict(), indent=2))
        return 0 if outcome.report.success else 1
    if outcome.digest is None:
        _print_report(outcome.report)
        return 1
    digest = outcome.digest
    print(f"Digest for {digest.day.isoformat()}: {digest.total} message(s)")
    for entry in digest.messages:
        print(f"  [{entry.priority.value:<6}] {entry.subject!r}: {entry.summary}")
    print()
    print(digest.overview)
    return 0


def _list_folders(settings: AppSettings) -> int:
    """Print every folder and whether it doubles as a category."""
    directory = FolderDirectory(fallback_category=settings.sorting.fallback_category)
    session = build_session_factory(settings)()
    try:
        with session:
            folders = directory.list_folders(session)
    except InboxSorterError as exc:
        print(f"Folder listing failed: {exc}")
        return 1
    for folder in folders:
        marker = "category" if is_category_candidate(folder) else "-"
        print(f"{folder.name:<40}  {marker:<8}  {folder.wire_name}")
    return 0


def _print_report(report: SortReport) -> None:
    status = "completed" if report.success else f"failed ({report.error_kind})"
    print(f"Run {status}.")
    if report.error:
        print(f"Error: {report.error}")
    if report.classified:
        print("Classified:")
        for name, count in report.classified.items():
            print(f"  {name:<30} {count:>5}")
    if report.moved:
        print(f"Moved {report.moved_total} message(s):")
        for name, count in report.moved.items():
            print(f"  {name:<30} {count:>5}")
    if report.skipped_without_uid:
        print(f"Skipped without UID: {report.skipped_without_uid}")
    if report.skipped_virtual:
        print(f"Left in virtual folders: {report.skipped_virtual}")
    if report.already_sorted:
        print(f"Already sorted: {report.already_sorted}")
    for name, error in report.failed_categories.items():
        print(f"  {name} failed: {error}")


if __name__ == "__main__":
    main()
