import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from .. import config
from ..config import CopyOptions, DuplicateHandling
from ..exceptions import PathResolutionError, TemplateError
from ..models import CopyPlan, DuplicateMatch, EnrichedFile, PlanEntry, ValidationFailure
from .duplicates import DuplicateDetector
from .naming import DuplicateNamer

# Characters that are not allowed inside a single path segment on common filesystems
_INVALID_SEGMENT_CHARS = re.compile(r'[\x00-\x1f<>:"/\\|?*]')
_TOKEN_RE = re.compile(r'\{([^{}]*)\}')
_SEPARATORS = re.compile(r'[\\/]')

_LOCATION_PLACEHOLDERS = {'location', 'city', 'state', 'country'}


@dataclass(frozen=True)
class Placeholder:
    name: str


@dataclass(frozen=True)
class DestinationTemplate:
    """A destination pattern split into literal text and placeholder tokens."""

    raw: str
    segments: tuple

    @classmethod
    def parse(cls, template: str) -> "DestinationTemplate":
        segments: List[Union[str, Placeholder]] = []
        pos = 0
        for m in _TOKEN_RE.finditer(template):
            if m.start() > pos:
                segments.append(template[pos:m.start()])
            name = m.group(1).lower()
            if name not in config.TEMPLATE_PLACEHOLDERS:
                raise TemplateError(f"Unknown template placeholder '{{{m.group(1)}}}'")
            segments.append(Placeholder(name))
            pos = m.end()
        if pos < len(template):
            segments.append(template[pos:])

        if not segments:
            raise TemplateError("Destination template is empty")
        return cls(template, tuple(segments))

    @property
    def placeholders(self) -> Set[str]:
        return {s.name for s in self.segments if isinstance(s, Placeholder)}


def sanitize_segment(value: Optional[str], fallback: str) -> str:
    """Makes a metadata value safe to use as (part of) one directory name."""
    if not value:
        return fallback
    clean = _INVALID_SEGMENT_CHARS.sub('_', value).strip().rstrip('. ')
    return clean or fallback


class TemplateResolver:
    """
    Expands a DestinationTemplate for one file.

    Date placeholders always resolve since every file carries a FileDateTime.
    Location placeholders fall back to the unknown_location literal.
    """

    def __init__(self, source_root: Path, unknown_location: str = config.UNKNOWN_LOCATION):
        self.source_root = Path(source_root)
        self.unknown_location = unknown_location

    def values(self, file: EnrichedFile) -> Dict[str, str]:
        dt = file.date.value
        path = file.path

        try:
            rel_dir = path.parent.relative_to(self.source_root).as_posix()
        except ValueError:
            rel_dir = ""
        if rel_dir == ".":
            rel_dir = ""

        # Separators inside a file name must not add directory levels
        stem = _SEPARATORS.sub('_', path.stem)
        filename = _SEPARATORS.sub('_', path.name)

        loc = file.location
        fallback = self.unknown_location
        return {
            'year': f"{dt.year:04d}",
            'month': f"{dt.month:02d}",
            'day': f"{dt.day:02d}",
            'name': stem,
            'namenoext': stem,
            'ext': path.suffix,
            'filename': filename,
            'directory': rel_dir,
            'location': sanitize_segment(
                (loc.place or loc.city) if loc else None, fallback),
            'city': sanitize_segment(loc.city if loc else None, fallback),
            'state': sanitize_segment(loc.state if loc else None, fallback),
            'country': sanitize_segment(loc.country if loc else None, fallback),
        }

    def resolve(self, template: DestinationTemplate, file: EnrichedFile, dest_root: Path) -> Path:
        values = self.values(file)
        text = "".join(
            values[s.name] if isinstance(s, Placeholder) else s
            for s in template.segments
        )

        # Empty segments (e.g. {directory} for top-level files) collapse
        parts = [p for p in re.split(r'[\\/]', text) if p and p != '.']
        if not parts:
            raise PathResolutionError(f"Template '{template.raw}' resolved to an empty path for {file.path}")
        if '..' in parts:
            raise PathResolutionError(f"Template '{template.raw}' escapes the destination for {file.path}")
        return Path(dest_root).joinpath(*parts)


class DestinationPlanner:
    """
    Turns enriched files into a CopyPlan: validation, content duplicates,
    template resolution and collision-safe naming, strictly in input order.
    """

    def __init__(self, options: CopyOptions,
                 validators: Optional[Iterable] = None,
                 namer: Optional[DuplicateNamer] = None,
                 detector: Optional[DuplicateDetector] = None):
        self.options = options
        self.template = DestinationTemplate.parse(options.template)
        self.resolver = TemplateResolver(options.source, options.unknown_location)
        self.validators = list(validators or [])
        self.namer = namer or DuplicateNamer(options.duplicates_format)
        self.detector = detector or DuplicateDetector()
        # Destinations already claimed in this batch
        self.reserved: Set[Path] = set()

        if self.template.placeholders & _LOCATION_PLACEHOLDERS and not options.geocode:
            logging.warning(
                f"Template uses location placeholders but geocoding is off; "
                f"they will resolve to '{options.unknown_location}'."
            )

    def plan(self, files: Iterable[EnrichedFile]) -> CopyPlan:
        plan = CopyPlan()
        for file in files:
            self.add(plan, file)

        logging.info(
            f"Planned {len(plan.entries)} files ({format_bytes(plan.total_bytes)}), "
            f"{len(plan.skipped)} skipped by validators, {len(plan.duplicates)} content duplicates."
        )
        return plan

    def add(self, plan: CopyPlan, file: EnrichedFile) -> Optional[PlanEntry]:
        failure = self._validate(file)
        if failure is not None:
            logging.info(f"Skipping {file.path}: {failure.reason}")
            plan.skipped.append(failure)
            return None

        try:
            candidate = self.resolver.resolve(self.template, file, self.options.destination)
        except PathResolutionError as e:
            logging.warning(f"Skipping {file.path}: {e}")
            plan.skipped.append(ValidationFailure(file, "TemplateResolver", str(e)))
            return None

        if self.options.duplicate_handling != DuplicateHandling.NONE:
            original = self.detector.find_duplicate_of(file)
            if original is not None:
                plan.duplicates.append(DuplicateMatch(file, original))
                if self.options.duplicate_handling == DuplicateHandling.SKIP:
                    logging.info(f"Skipping {file.path}: same content as {original.path}")
                    return None
                logging.info(f"Duplicate content: {file.path} matches {original.path}")
            else:
                self.detector.register(file)

        existing = self.options.skip_existing and candidate.exists()
        if existing:
            # Left as-is so the executor reports it as skipped
            destination = candidate
        else:
            destination = self.namer.resolve(candidate, self.reserved)
        self.reserved.add(destination)

        entry = PlanEntry(file=file, destination=destination, operation=self.options.mode)
        plan.entries.append(entry)
        if not existing:
            plan.total_bytes += file.record.size_bytes
            self._collect_directories(plan, destination.parent)
        return entry

    def _validate(self, file: EnrichedFile) -> Optional[ValidationFailure]:
        for validator in self.validators:
            result = validator.validate(file)
            if not result.is_valid:
                return ValidationFailure(file, result.validator_name, result.reason)
        return None

    def _collect_directories(self, plan: CopyPlan, folder: Path) -> None:
        while folder not in plan.directories and not folder.exists():
            plan.directories.add(folder)
            if folder.parent == folder:
                break
            folder = folder.parent


def format_bytes(size: int) -> str:
    if size < 0:
        return "-" + format_bytes(-size)
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    if i == 0:
        return f"{size} B"
    return f"{value:.2f}".rstrip('0').rstrip('.') + f" {units[i]}"


def log_plan_summary(plan: CopyPlan) -> None:
    """Dry-run overview of what a real run would do."""
    logging.info(f"[DRY RUN] {len(plan.entries)} files would be processed")
    logging.info(f"[DRY RUN] {len(plan.directories)} directories would be created")
    logging.info(f"[DRY RUN] Total size {format_bytes(plan.total_bytes)} ({plan.total_bytes} bytes)")
    if plan.skipped:
        logging.info(f"[DRY RUN] {len(plan.skipped)} files skipped by validators")
    if plan.duplicates:
        logging.info(f"[DRY RUN] {len(plan.duplicates)} content duplicates found")
