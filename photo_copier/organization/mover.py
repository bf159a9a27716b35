import errno
import os
import shutil
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from ..config import CopyOptions, OperationMode
from ..exceptions import FileOperationError
from ..models import (CopyPlan, EntryResult, EntryStatus, ExecutionSummary,
                      OperationRecord, PlanEntry)
from ..scanning.hasher import FileHasher
from .transactions import TransactionLogger


class FileMover:
    """
    Applies a CopyPlan in order.

    One entry failing never stops the batch; completed work is only undone
    by an explicit rollback over the transaction log.
    """

    def __init__(self, options: CopyOptions, hasher: Optional[FileHasher] = None):
        self.options = options
        self.hasher = hasher or FileHasher()

    def execute(self, plan: CopyPlan, transaction: Optional[TransactionLogger] = None) -> ExecutionSummary:
        summary = ExecutionSummary()
        move_mode = self.options.mode == OperationMode.MOVE

        if not plan.entries:
            logging.info("No files need processing.")
            return summary

        logging.info(
            f"Processing {len(plan.entries)} files "
            f"(Move={move_mode}, DryRun={self.options.dry_run}, SkipExisting={self.options.skip_existing})..."
        )

        for entry in tqdm(plan.entries, desc="Moving" if move_mode else "Copying"):
            src = entry.file.path
            dest = entry.destination

            if self.options.skip_existing and dest.exists():
                logging.info(f"Skipping {src}: {dest} already exists")
                summary.results.append(EntryResult(entry, EntryStatus.SKIPPED))
                continue

            if self.options.dry_run:
                logging.info(f"[DRY RUN] {'Move' if move_mode else 'Copy'} {src} -> {dest}")
                summary.results.append(EntryResult(entry, EntryStatus.PLANNED))
                continue

            try:
                self._process(entry, transaction)
            except (OSError, FileOperationError) as e:
                logging.error(f"Failed to process {src} -> {dest}: {e}")
                summary.results.append(EntryResult(entry, EntryStatus.FAILED, str(e)))
                continue

            summary.results.append(EntryResult(entry, EntryStatus.COMPLETED))
            summary.bytes_processed += entry.file.record.size_bytes

        logging.info(
            f"Done: {len(summary.completed)} completed, {len(summary.skipped)} skipped, "
            f"{len(summary.failed)} failed, {len(summary.planned)} planned."
        )
        return summary

    def _process(self, entry: PlanEntry, transaction: Optional[TransactionLogger]) -> None:
        src = entry.file.path
        dest = entry.destination

        self._make_parents(dest.parent, transaction)
        if dest.exists():
            # Planned names are unique; something appeared since planning
            raise FileOperationError(f"Destination already exists: {dest}")

        if entry.operation == OperationMode.MOVE:
            self._move(entry)
        else:
            self._copy(src, dest)

        if transaction is not None:
            transaction.record(OperationRecord(
                source=src.resolve(),
                destination=dest.resolve(),
                operation=entry.operation,
                timestamp=datetime.now(),
                size_bytes=entry.file.record.size_bytes,
                checksum=entry.file.checksum,
            ))

    def _make_parents(self, folder: Path, transaction: Optional[TransactionLogger]) -> None:
        missing = []
        current = folder
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent

        # Outermost first
        for d in reversed(missing):
            d.mkdir(exist_ok=True)
            if transaction is not None:
                transaction.record_directory(d.resolve())

    def _copy(self, src: Path, dest: Path) -> None:
        try:
            shutil.copy2(str(src), str(dest))
        except OSError:
            self._remove_partial(dest)
            raise

    def _move(self, entry: PlanEntry) -> None:
        src = entry.file.path
        dest = entry.destination
        try:
            # Atomic when both paths are on the same filesystem
            os.rename(src, dest)
            return
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise

        # Cross-device: copy, verify, then remove the source
        self._copy(src, dest)
        try:
            self._verify(entry)
        except (OSError, FileOperationError):
            self._remove_partial(dest)
            raise
        try:
            src.unlink()
        except OSError:
            # Source could not be removed, so the move did not happen
            self._remove_partial(dest)
            raise

    def _verify(self, entry: PlanEntry) -> None:
        src = entry.file.path
        dest = entry.destination

        if dest.stat().st_size != src.stat().st_size:
            raise FileOperationError(f"Size mismatch after copying {src} -> {dest}")
        if entry.file.checksum and self.hasher.compute_checksum(dest) != entry.file.checksum:
            raise FileOperationError(f"Checksum mismatch after copying {src} -> {dest}")

    def _remove_partial(self, dest: Path) -> None:
        try:
            if dest.exists():
                dest.unlink()
        except OSError as e:
            logging.warning(f"Could not remove partial file {dest}: {e}")
