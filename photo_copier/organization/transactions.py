"""
Transaction log and explicit rollback.

Every completed filesystem mutation is appended to a JSON log under
<destination>/.photo-copier-logs/ and the file is rewritten after each
operation, so an interrupted batch still leaves a consistent record.
Rollback is never automatic; it is a separate command over a saved log.
"""
import json
import os
import shutil
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .. import config
from ..config import CopyOptions, OperationMode
from ..exceptions import FileOperationError, TransactionLogError
from ..models import OperationRecord, TransactionLog, TransactionStatus


def _write_atomic(path: Path, log: TransactionLog) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, 'w', encoding='utf-8') as f:
        json.dump(log.to_dict(), f, indent=2)
    os.replace(tmp, path)


def load_transaction_log(path: Path) -> TransactionLog:
    path = Path(path)
    if not path.is_file():
        raise TransactionLogError(f"Transaction log not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return TransactionLog.from_dict(json.load(f))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise TransactionLogError(f"Failed to parse transaction log {path}: {e}") from e


class TransactionLogger:
    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)
        self.log: Optional[TransactionLog] = None
        self.path: Optional[Path] = None

    @classmethod
    def for_destination(cls, destination: Path) -> "TransactionLogger":
        return cls(Path(destination) / config.TRANSACTION_LOG_DIR)

    def begin(self, options: CopyOptions) -> TransactionLog:
        started = datetime.now()
        self.log = TransactionLog(
            transaction_id=uuid.uuid4().hex[:12],
            started_at=started,
            source=options.source.resolve(),
            destination=options.destination.resolve(),
            template=options.template,
            dry_run=options.dry_run,
        )
        name = f"{config.TRANSACTION_LOG_PREFIX}{started:%Y%m%d-%H%M%S}-{self.log.transaction_id}.json"
        self.path = self.log_dir / name
        self.save()
        logging.info(f"Transaction log: {self.path}")
        return self.log

    def record(self, operation: OperationRecord) -> None:
        self._require().operations.append(operation)
        self.save()

    def record_directory(self, directory: Path) -> None:
        self._require().created_directories.append(Path(directory))
        self.save()

    def complete(self) -> None:
        log = self._require()
        log.status = TransactionStatus.COMPLETED
        log.ended_at = datetime.now()
        self.save()

    def fail(self, error: str) -> None:
        log = self._require()
        log.status = TransactionStatus.FAILED
        log.error = error
        log.ended_at = datetime.now()
        self.save()

    def discard(self) -> None:
        """Removes the log file, used when the caller does not want to keep it after success."""
        if self.path is not None and self.path.exists():
            self.path.unlink()
            logging.debug(f"Discarded transaction log {self.path}")

    def save(self) -> None:
        _write_atomic(self.path, self._require())

    def _require(self) -> TransactionLog:
        if self.log is None:
            raise TransactionLogError("Transaction has not been started")
        return self.log


@dataclass
class TransactionLogInfo:
    path: Path
    transaction_id: str
    started_at: datetime
    status: TransactionStatus
    operation_count: int


def list_transaction_logs(directory: Path) -> List[TransactionLogInfo]:
    """Accepts either a log directory or a destination root containing one."""
    directory = Path(directory)
    nested = directory / config.TRANSACTION_LOG_DIR
    if nested.is_dir():
        directory = nested
    if not directory.is_dir():
        return []

    infos = []
    for path in sorted(directory.glob(f"{config.TRANSACTION_LOG_PREFIX}*.json")):
        try:
            log = load_transaction_log(path)
        except TransactionLogError as e:
            logging.warning(f"Ignoring unreadable transaction log: {e}")
            continue
        infos.append(TransactionLogInfo(path, log.transaction_id, log.started_at,
                                        log.status, len(log.operations)))
    return infos


@dataclass
class RollbackResult:
    success: bool = True
    files_restored: int = 0
    files_failed: int = 0
    directories_removed: int = 0
    errors: List[str] = field(default_factory=list)


class RollbackService:
    def rollback(self, log_path: Path) -> RollbackResult:
        """
        Undoes a saved transaction: moved files go back to their source,
        copied files are deleted, then directories the batch created are
        removed if they are empty. Per-file problems are collected, not raised.
        """
        log_path = Path(log_path)
        log = load_transaction_log(log_path)
        if log.dry_run:
            raise TransactionLogError("Cannot rollback a dry run transaction")
        if log.status == TransactionStatus.ROLLED_BACK:
            raise TransactionLogError(f"Transaction {log.transaction_id} was already rolled back")

        logging.info(f"Rolling back transaction {log.transaction_id} ({len(log.operations)} operations)")
        result = RollbackResult()

        for op in reversed(log.operations):
            try:
                if self._undo(op):
                    result.files_restored += 1
            except (OSError, FileOperationError) as e:
                result.files_failed += 1
                result.errors.append(f"Failed to rollback {op.destination}: {e}")
                logging.error(result.errors[-1])

        # Deepest first so parents are empty by the time we reach them
        for directory in sorted(log.created_directories, key=lambda d: len(d.parts), reverse=True):
            try:
                if directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
                    result.directories_removed += 1
                    logging.debug(f"Removed empty directory {directory}")
            except OSError as e:
                result.errors.append(f"Failed to remove directory {directory}: {e}")
                logging.error(result.errors[-1])

        result.success = result.files_failed == 0
        if result.success:
            log.status = TransactionStatus.ROLLED_BACK
            log.error = None
        else:
            log.status = TransactionStatus.FAILED
            log.error = f"Rollback incomplete: {result.files_failed} files could not be restored"
        log.ended_at = datetime.now()
        _write_atomic(log_path, log)

        logging.info(
            f"Rollback {'completed' if result.success else 'completed with errors'}: "
            f"{result.files_restored} files restored, {result.files_failed} failed, "
            f"{result.directories_removed} directories removed"
        )
        return result

    def _undo(self, op: OperationRecord) -> bool:
        """Returns True when something was restored, False when there was nothing left to undo."""
        if op.operation == OperationMode.MOVE:
            if not op.destination.exists():
                if op.source.exists():
                    logging.debug(f"Already restored: {op.source}")
                    return False
                raise FileOperationError(f"Destination file not found: {op.destination}")
            if op.source.exists():
                raise FileOperationError(f"Source path is occupied: {op.source}")
            op.source.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(op.destination), str(op.source))
            logging.debug(f"Restored {op.destination} -> {op.source}")
            return True

        if not op.destination.exists():
            logging.debug(f"Copied file already removed: {op.destination}")
            return False
        op.destination.unlink()
        logging.debug(f"Deleted copied file {op.destination}")
        return True
