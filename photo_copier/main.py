import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import config
from .config import CopyOptions, DuplicateHandling, OperationMode
from .core import PhotoCopierApp
from .exceptions import ConfigurationError, TransactionLogError
from .organization.transactions import RollbackService, list_transaction_logs
from .reporting import ReportGenerator

EXIT_OK = 0
EXIT_FAILED_ENTRIES = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def setup_logging(log_dir: Optional[Path], verbose: bool):
    """Sets up logging to the console and, when given a directory, to a file in it."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir is not None:
        # Create dest root if it doesn't exist so we can log there
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_dir / "photo_copier.log", encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("geopy").setLevel(logging.WARNING)


def _parse_date(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="photo-copier",
                                description="Copy or move media into a date/location based folder layout")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("copy", help="Copy or move files from SRC into DEST")
    c.add_argument("src", type=Path, help="Source directory to scan")
    c.add_argument("dest", type=Path, help="Destination library root")
    c.add_argument("--template", default=config.DEFAULT_TEMPLATE,
                   help=f"Destination path template (default: {config.DEFAULT_TEMPLATE})")
    c.add_argument("--move", action="store_true", help="Move files instead of Copying")
    c.add_argument("--dry-run", action="store_true", help="Simulate actions without modifying disk")
    c.add_argument("--skip-existing", action="store_true",
                   help="Leave files alone whose destination already exists")
    c.add_argument("--checksums", action="store_true", help="Compute SHA-256 checksums")
    c.add_argument("--duplicates", choices=[d.value for d in DuplicateHandling],
                   default=DuplicateHandling.NONE.value,
                   help="Content duplicate handling (requires --checksums)")
    c.add_argument("--duplicates-format", default=config.DEFAULT_DUPLICATES_FORMAT,
                   help="Suffix for name collisions, must contain {number}")
    c.add_argument("--min-date", type=_parse_date, help="Only files taken on or after YYYY-MM-DD")
    c.add_argument("--max-date", type=_parse_date, help="Only files taken on or before YYYY-MM-DD")
    c.add_argument("--exclude", action="append", default=[], metavar="PATTERN",
                   help="Glob pattern (relative to SRC) to leave out; repeatable")
    c.add_argument("--ext", action="append", default=None, metavar="EXT",
                   help="Allowed extension; repeatable (default: common photo/video types)")
    c.add_argument("--geocode", action="store_true", help="Resolve GPS coordinates to place names")
    c.add_argument("--unknown-location", default=config.UNKNOWN_LOCATION,
                   help="Folder name used when a location is not known")
    c.add_argument("--no-transaction-log", action="store_true",
                   help="Do not write a transaction log (disables rollback)")
    c.add_argument("--report-csv", type=Path, default=None, help="Write a CSV report of the run")
    c.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    r = sub.add_parser("rollback", help="Undo a batch using its transaction log")
    group = r.add_mutually_exclusive_group(required=True)
    group.add_argument("log", nargs="?", type=Path, help="Transaction log file")
    group.add_argument("--list", type=Path, metavar="DIR", help="List transaction logs in DIR")
    r.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p


def options_from_args(args) -> CopyOptions:
    options = CopyOptions(
        source=args.src,
        destination=args.dest,
        template=args.template,
        mode=OperationMode.MOVE if args.move else OperationMode.COPY,
        dry_run=args.dry_run,
        skip_existing=args.skip_existing,
        calculate_checksums=args.checksums,
        duplicates_format=args.duplicates_format,
        min_date=args.min_date,
        max_date=args.max_date,
        exclude_patterns=args.exclude,
        duplicate_handling=DuplicateHandling(args.duplicates),
        geocode=args.geocode,
        unknown_location=args.unknown_location,
        enable_rollback=not args.no_transaction_log,
    )
    if args.ext:
        options.allowed_extensions = {config.normalize_extension(e) for e in args.ext}
    return options


def run_copy(args) -> int:
    options = options_from_args(args)

    # Dry runs must leave the destination untouched, so no log file there
    usable_dest = not args.dest.exists() or args.dest.is_dir()
    setup_logging(args.dest if usable_dest and not args.dry_run else None, args.verbose)

    logging.info("=== Photo Copier Started ===")
    logging.info(f"Source: {options.source}")
    logging.info(f"Dest:   {options.destination}")

    app = PhotoCopierApp(options)
    try:
        result = app.run()
    except ConfigurationError as e:
        for err in e.errors:
            logging.error(f"Configuration error: {err}")
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return EXIT_INTERRUPTED

    if args.report_csv:
        ReportGenerator(result).write_csv(args.report_csv)

    if result.transaction_log:
        logging.info(f"Undo with: photo-copier rollback {result.transaction_log}")
    return EXIT_OK if result.summary.success else EXIT_FAILED_ENTRIES


def run_rollback(args) -> int:
    setup_logging(None, args.verbose)

    if args.list:
        logs = list_transaction_logs(args.list)
        if not logs:
            logging.info(f"No transaction logs in {args.list}")
        for info in logs:
            logging.info(
                f"{info.path.name}  {info.started_at:%Y-%m-%d %H:%M:%S}  "
                f"{info.status.value}  {info.operation_count} operations"
            )
        return EXIT_OK

    try:
        result = RollbackService().rollback(args.log)
    except TransactionLogError as e:
        logging.error(str(e))
        return EXIT_CONFIG_ERROR

    for err in result.errors:
        logging.error(err)
    return EXIT_OK if result.success else EXIT_FAILED_ENTRIES


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "rollback":
        return run_rollback(args)
    return run_copy(args)


if __name__ == "__main__":
    sys.exit(main())
