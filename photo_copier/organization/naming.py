from pathlib import Path
from typing import Set

from .. import config


class DuplicateNamer:
    """
    Ensures a destination path is unique, both on disk and within the batch.

    The reserved set is owned by the caller (one per batch) and is the only
    in-memory state involved, so a fixed destination snapshot plus a fixed
    processing order always yields the same suffixes.
    """

    def __init__(self, duplicates_format: str = config.DEFAULT_DUPLICATES_FORMAT):
        self.duplicates_format = duplicates_format

    def is_available(self, path: Path, reserved: Set[Path]) -> bool:
        return path not in reserved and not path.exists()

    def resolve(self, candidate: Path, reserved: Set[Path]) -> Path:
        """Returns candidate, or candidate with the first free numeric suffix before the extension."""
        if self.is_available(candidate, reserved):
            return candidate

        folder = candidate.parent
        stem = candidate.stem
        ext = candidate.suffix
        counter = 1

        while True:
            suffix = self.duplicates_format.replace(config.DUPLICATE_NUMBER, str(counter))
            path = folder / f"{stem}{suffix}{ext}"
            if self.is_available(path, reserved):
                return path
            counter += 1
