import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import CopyOptions, validate_options
from .metadata.enrich import build_enricher
from .metadata.extract import MetadataExtractor
from .metadata.geocode import ReverseGeocoder
from .models import CopyPlan, ExecutionSummary
from .organization.mover import FileMover
from .organization.rules import DestinationPlanner, log_plan_summary
from .organization.transactions import TransactionLogger
from .organization.validators import build_validators
from .scanning.filesystem import DiskScanner, FileFactory
from .scanning.hasher import FileHasher


@dataclass
class RunResult:
    plan: CopyPlan
    summary: ExecutionSummary
    transaction_log: Optional[Path] = None


class PhotoCopierApp:
    def __init__(self, options: CopyOptions,
                 extractor: Optional[MetadataExtractor] = None,
                 geocoder: Optional[ReverseGeocoder] = None,
                 hasher: Optional[FileHasher] = None):
        self.options = options
        self.extractor = extractor
        self.geocoder = geocoder
        self.hasher = hasher or FileHasher()

    def run(self) -> RunResult:
        """
        One batch pass.
        1. Validate options (raises ConfigurationError before touching anything)
        2. Scan & Enrich (lazy, one file at a time)
        3. Plan (validators, duplicates, template, collision-safe names)
        4. Execute (copy/move, recorded in the transaction log)
        """
        options = self.options
        validate_options(options)

        # --- Step 1: Scanning ---
        logging.info(f"Scanning {options.source}...")
        enricher = build_enricher(options, self.extractor, self.geocoder, self.hasher)
        scanner = DiskScanner(options, FileFactory(options, enricher))

        # --- Step 2: Planning ---
        # Consumes the scanner lazily; reservations are made in scan order
        planner = DestinationPlanner(options, build_validators(options))
        plan = planner.plan(scanner.scan())

        if options.dry_run:
            log_plan_summary(plan)

        # --- Step 3: Execution ---
        transaction = None
        if options.enable_rollback and not options.dry_run and plan.entries:
            transaction = TransactionLogger.for_destination(options.destination)
            transaction.begin(options)

        mover = FileMover(options, self.hasher)
        try:
            summary = mover.execute(plan, transaction)
        except KeyboardInterrupt:
            if transaction is not None:
                transaction.fail("Cancelled by user")
            raise
        except Exception as e:
            if transaction is not None:
                transaction.fail(str(e))
            raise

        log_path = None
        if transaction is not None:
            log_path = transaction.path
            if summary.success:
                transaction.complete()
                if not options.keep_transaction_log:
                    transaction.discard()
                    log_path = None
            else:
                transaction.fail(f"{len(summary.failed)} files failed")

        logging.info("Batch complete.")
        return RunResult(plan, summary, log_path)
