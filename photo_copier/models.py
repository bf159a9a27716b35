from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import OperationMode


@dataclass(frozen=True)
class FileRecord:
    """
    Represents a file found during a scan.
    """
    path: Path
    size_bytes: int
    modified: datetime
    created: Optional[datetime] = None  # not every filesystem reports birth time

    @property
    def name(self) -> str:
        return self.path.name


class DateTimeSource(str, Enum):
    EMBEDDED_METADATA = "embedded_metadata"
    FILE_CREATION_TIME = "file_creation_time"
    FILE_MODIFIED_TIME = "file_modified_time"


@dataclass(frozen=True)
class FileDateTime:
    value: datetime
    source: DateTimeSource

    @classmethod
    def from_filesystem(cls, record: FileRecord) -> "FileDateTime":
        """Creation time when the filesystem has one, modification time otherwise."""
        if record.created is not None:
            return cls(record.created, DateTimeSource.FILE_CREATION_TIME)
        return cls(record.modified, DateTimeSource.FILE_MODIFIED_TIME)


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float

    # Filled by the reverse geocoder when it answers
    place: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class FileKind(str, Enum):
    MEDIA = "media"        # went through the enrichment pipeline
    GENERIC = "generic"    # filesystem timestamps only


@dataclass(frozen=True)
class EnrichedFile:
    """
    A scanned file plus everything derived from it.
    Built once by the factory; nothing mutates it afterwards.
    """
    kind: FileKind
    record: FileRecord
    date: FileDateTime
    location: Optional[GeoLocation] = None
    checksum: Optional[str] = None

    @property
    def path(self) -> Path:
        return self.record.path


# --- Planning ---

@dataclass(frozen=True)
class PlanEntry:
    file: EnrichedFile
    destination: Path
    operation: OperationMode


@dataclass(frozen=True)
class ValidationFailure:
    file: EnrichedFile
    validator_name: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class DuplicateMatch:
    """A file whose content matches a file planned earlier in the batch."""
    file: EnrichedFile
    original: EnrichedFile


@dataclass
class CopyPlan:
    entries: List[PlanEntry] = field(default_factory=list)
    skipped: List[ValidationFailure] = field(default_factory=list)
    duplicates: List[DuplicateMatch] = field(default_factory=list)
    directories: set = field(default_factory=set)
    total_bytes: int = 0


# --- Execution ---

class EntryStatus(str, Enum):
    COMPLETED = "completed"
    PLANNED = "planned"      # dry run
    SKIPPED = "skipped"      # destination already present
    FAILED = "failed"


@dataclass(frozen=True)
class EntryResult:
    entry: PlanEntry
    status: EntryStatus
    error: Optional[str] = None


@dataclass
class ExecutionSummary:
    results: List[EntryResult] = field(default_factory=list)
    bytes_processed: int = 0

    def _with_status(self, status: EntryStatus) -> List[EntryResult]:
        return [r for r in self.results if r.status == status]

    @property
    def completed(self) -> List[EntryResult]:
        return self._with_status(EntryStatus.COMPLETED)

    @property
    def planned(self) -> List[EntryResult]:
        return self._with_status(EntryStatus.PLANNED)

    @property
    def skipped(self) -> List[EntryResult]:
        return self._with_status(EntryStatus.SKIPPED)

    @property
    def failed(self) -> List[EntryResult]:
        return self._with_status(EntryStatus.FAILED)

    @property
    def success(self) -> bool:
        return not self.failed


# --- Transaction Log ---

class TransactionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class OperationRecord:
    """One completed filesystem mutation. Only appended after it succeeded."""
    source: Path
    destination: Path
    operation: OperationMode
    timestamp: datetime
    size_bytes: int = 0
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": str(self.source),
            "destination": str(self.destination),
            "operation": self.operation.value,
            "timestamp": self.timestamp.isoformat(),
            "size_bytes": self.size_bytes,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "OperationRecord":
        return cls(
            source=Path(raw["source"]),
            destination=Path(raw["destination"]),
            operation=OperationMode(raw["operation"]),
            timestamp=datetime.fromisoformat(raw["timestamp"]),
            size_bytes=raw.get("size_bytes", 0),
            checksum=raw.get("checksum"),
        )


@dataclass
class TransactionLog:
    transaction_id: str
    started_at: datetime
    source: Path
    destination: Path
    template: str
    dry_run: bool = False
    status: TransactionStatus = TransactionStatus.IN_PROGRESS
    ended_at: Optional[datetime] = None
    error: Optional[str] = None
    operations: List[OperationRecord] = field(default_factory=list)
    created_directories: List[Path] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "source": str(self.source),
            "destination": str(self.destination),
            "template": self.template,
            "dry_run": self.dry_run,
            "status": self.status.value,
            "error": self.error,
            "operations": [op.to_dict() for op in self.operations],
            "created_directories": [str(d) for d in self.created_directories],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TransactionLog":
        ended = raw.get("ended_at")
        return cls(
            transaction_id=raw["transaction_id"],
            started_at=datetime.fromisoformat(raw["started_at"]),
            ended_at=datetime.fromisoformat(ended) if ended else None,
            source=Path(raw["source"]),
            destination=Path(raw["destination"]),
            template=raw.get("template", ""),
            dry_run=raw.get("dry_run", False),
            status=TransactionStatus(raw.get("status", TransactionStatus.IN_PROGRESS.value)),
            error=raw.get("error"),
            operations=[OperationRecord.from_dict(op) for op in raw.get("operations", [])],
            created_directories=[Path(d) for d in raw.get("created_directories", [])],
        )
