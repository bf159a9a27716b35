"""
Configuration constants and run options for the photo copier.
"""
import fnmatch
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from .exceptions import ConfigurationError

# --- File Type Definitions ---
RAW_EXTS = {'.cr2', '.cr3', '.raf', '.nef', '.arw', '.orf', '.rw2', '.dng'}
JPEG_EXTS = {'.jpg', '.jpeg', '.jpe', '.png', '.heic', '.heif', '.tif', '.tiff'}
VIDEO_EXTS = {'.mp4', '.mov', '.m4v', '.avi', '.mts', '.m2ts', '.3gp', '.mpg', '.mpeg'}

DEFAULT_ALLOWED_EXTS = RAW_EXTS | JPEG_EXTS | VIDEO_EXTS

# --- Metadata Parsing ---
# Priority order: the first tag that parses wins.
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

# --- Hashing ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Organization ---
DEFAULT_TEMPLATE = "{year}/{month}/{day}/{name}{ext}"
DUPLICATE_NUMBER = "{number}"
DEFAULT_DUPLICATES_FORMAT = "_{number}"
UNKNOWN_LOCATION = "Unknown"

# --- Transaction Log ---
TRANSACTION_LOG_DIR = ".photo-copier-logs"
TRANSACTION_LOG_PREFIX = "photo-copier-"

# Placeholders understood by the destination template
TEMPLATE_PLACEHOLDERS = {
    'year', 'month', 'day',
    'name', 'namenoext', 'ext', 'filename', 'directory',
    'location', 'city', 'state', 'country',
}


class OperationMode(str, Enum):
    COPY = "copy"
    MOVE = "move"


class DuplicateHandling(str, Enum):
    """What to do with files whose content was already planned in this batch."""

    NONE = "none"
    SKIP = "skip"
    REPORT = "report"


@dataclass
class CopyOptions:
    """Options for a single copy/move batch."""

    source: Path
    destination: Path
    template: str = DEFAULT_TEMPLATE
    mode: OperationMode = OperationMode.COPY
    dry_run: bool = False
    skip_existing: bool = False
    calculate_checksums: bool = False
    allowed_extensions: Set[str] = field(default_factory=lambda: set(DEFAULT_ALLOWED_EXTS))
    duplicates_format: str = DEFAULT_DUPLICATES_FORMAT
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None
    exclude_patterns: List[str] = field(default_factory=list)
    duplicate_handling: DuplicateHandling = DuplicateHandling.NONE
    geocode: bool = False
    unknown_location: str = UNKNOWN_LOCATION
    enable_rollback: bool = True
    keep_transaction_log: bool = True

    def __post_init__(self):
        self.source = Path(self.source)
        self.destination = Path(self.destination)
        self.allowed_extensions = {normalize_extension(e) for e in self.allowed_extensions}

    def is_allowed(self, path: Path) -> bool:
        return path.suffix.lower() in self.allowed_extensions


def normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith('.'):
        ext = '.' + ext
    return ext


_PLACEHOLDER_RE = re.compile(r'\{([^{}]*)\}')


def find_unknown_placeholders(template: str) -> List[str]:
    return [m.group(1) for m in _PLACEHOLDER_RE.finditer(template)
            if m.group(1).lower() not in TEMPLATE_PLACEHOLDERS]


def validate_options(options: CopyOptions) -> None:
    """
    Checks the options before any scanning happens.
    Collects every problem and raises a single ConfigurationError.
    """
    errors: List[str] = []

    if not options.source.is_dir():
        errors.append(f"Source path '{options.source}' does not exist or is not a directory.")
    else:
        src = options.source.resolve()
        dest = options.destination.resolve()
        if src == dest:
            errors.append("Source and destination cannot be the same directory.")
        elif src in dest.parents:
            errors.append("Destination cannot be inside the source directory.")

    if options.destination.exists() and not options.destination.is_dir():
        errors.append(f"Destination path '{options.destination}' is not a directory.")

    if options.min_date and options.max_date and options.min_date > options.max_date:
        errors.append(
            f"Min date ({options.min_date:%Y-%m-%d}) cannot be after max date ({options.max_date:%Y-%m-%d})."
        )

    if not options.template.strip():
        errors.append("Destination template is required.")
    if '..' in re.split(r'[\\/]', options.template):
        errors.append("Destination template cannot contain '..' segments.")
    for name in find_unknown_placeholders(options.template):
        errors.append(
            f"Unknown template placeholder '{{{name}}}'. "
            f"Valid placeholders: {', '.join(sorted(TEMPLATE_PLACEHOLDERS))}."
        )

    if DUPLICATE_NUMBER not in options.duplicates_format:
        errors.append(f"Duplicates format must contain {DUPLICATE_NUMBER}.")
    elif any(sep in options.duplicates_format for sep in ('/', '\\')):
        errors.append("Duplicates format cannot contain path separators.")

    if options.duplicate_handling != DuplicateHandling.NONE and not options.calculate_checksums:
        errors.append("Content duplicate handling requires checksums to be enabled.")

    if not options.allowed_extensions:
        errors.append("At least one allowed extension is required.")

    for pattern in options.exclude_patterns:
        try:
            re.compile(fnmatch.translate(pattern))
        except re.error:
            errors.append(f"Invalid exclude pattern '{pattern}'.")

    if errors:
        raise ConfigurationError(errors)
