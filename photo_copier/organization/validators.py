"""
Per-file filters applied before a destination is planned.

A validator returns a ValidationResult; the first failing one excludes the
file from the plan. Rejections are informational, never errors.
"""
import fnmatch
from dataclasses import dataclass
from datetime import datetime, time
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import CopyOptions
from ..models import EnrichedFile


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    validator_name: str
    reason: Optional[str] = None

    @classmethod
    def ok(cls, name: str) -> "ValidationResult":
        return cls(True, name)

    @classmethod
    def fail(cls, name: str, reason: str) -> "ValidationResult":
        return cls(False, name, reason)


class MinDateValidator:
    name = "MinDateValidator"

    def __init__(self, min_date: datetime):
        self.min_date = min_date

    def validate(self, file: EnrichedFile) -> ValidationResult:
        taken = file.date.value
        if taken < self.min_date:
            return ValidationResult.fail(
                self.name, f"File date {taken:%Y-%m-%d} is before {self.min_date:%Y-%m-%d}"
            )
        return ValidationResult.ok(self.name)


class MaxDateValidator:
    name = "MaxDateValidator"

    def __init__(self, max_date: datetime):
        # Inclusive of the whole last day when no time was given
        if max_date.time() == time.min:
            max_date = datetime.combine(max_date.date(), time.max)
        self.max_date = max_date

    def validate(self, file: EnrichedFile) -> ValidationResult:
        taken = file.date.value
        if taken > self.max_date:
            return ValidationResult.fail(
                self.name, f"File date {taken:%Y-%m-%d} is after {self.max_date:%Y-%m-%d}"
            )
        return ValidationResult.ok(self.name)


class ExcludePatternValidator:
    """Glob patterns matched case-insensitively against the path relative to the source root."""

    name = "ExcludePatternValidator"

    def __init__(self, patterns: Iterable[str], source_root: Path):
        self.patterns = [p.replace('\\', '/') for p in patterns]
        self.source_root = Path(source_root)

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.source_root).as_posix()
        except ValueError:
            return path.name

    def validate(self, file: EnrichedFile) -> ValidationResult:
        rel = self._relative(file.path).lower()
        name = file.path.name.lower()
        for pattern in self.patterns:
            lowered = pattern.lower()
            if fnmatch.fnmatchcase(rel, lowered) or fnmatch.fnmatchcase(name, lowered):
                return ValidationResult.fail(self.name, f"File matches exclude pattern '{pattern}'")
        return ValidationResult.ok(self.name)


def build_validators(options: CopyOptions) -> List:
    validators: List = []
    if options.min_date is not None:
        validators.append(MinDateValidator(options.min_date))
    if options.max_date is not None:
        validators.append(MaxDateValidator(options.max_date))
    if options.exclude_patterns:
        validators.append(ExcludePatternValidator(options.exclude_patterns, options.source))
    return validators
