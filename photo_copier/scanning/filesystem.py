import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from ..config import CopyOptions
from ..models import EnrichedFile, FileDateTime, FileKind, FileRecord
from ..metadata.enrich import MetadataEnricher


def stat_record(path: Path) -> FileRecord:
    """Builds a FileRecord from a single stat() call."""
    st = path.stat()

    birth = getattr(st, 'st_birthtime', None)
    if birth is None and os.name == 'nt':
        # st_ctime is the creation time on Windows only
        birth = st.st_ctime

    return FileRecord(
        path=path,
        size_bytes=st.st_size,
        modified=datetime.fromtimestamp(st.st_mtime),
        created=datetime.fromtimestamp(birth) if birth is not None else None,
    )


class FileFactory:
    """
    Decides per entry whether it is media (goes through the enrichment
    pipeline) or a generic file (filesystem timestamps only).
    """

    def __init__(self, options: CopyOptions, enricher: MetadataEnricher):
        self.options = options
        self.enricher = enricher

    def create(self, path: Path) -> EnrichedFile:
        record = stat_record(path)
        if self.options.is_allowed(path):
            return self.enricher.enrich(record)
        return EnrichedFile(
            kind=FileKind.GENERIC,
            record=record,
            date=FileDateTime.from_filesystem(record),
        )


class DiskScanner:
    def __init__(self, options: CopyOptions, factory: FileFactory):
        self.options = options
        self.factory = factory

    def scan(self, root: Optional[Path] = None) -> Iterator[EnrichedFile]:
        """
        Generator that yields an EnrichedFile for every allowed file under root.
        Files with other extensions are never stat'ed or enriched.
        """
        root = root or self.options.source
        for path in self._iter_files(root):
            if not self.options.is_allowed(path):
                continue
            try:
                yield self.factory.create(path)
            except (OSError, ValueError, OverflowError) as e:
                # Unreadable file or a timestamp outside the platform's range
                logging.error(f"Failed to scan {path}: {e}")

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    # macOS AppleDouble files carry the image's extension
                    if e.name.startswith("._"):
                        continue
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
