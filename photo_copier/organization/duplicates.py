import logging
from typing import Dict, Optional

from ..models import EnrichedFile


class DuplicateDetector:
    """
    Content-duplicate index for one batch, keyed by checksum.
    The first file registered for a checksum is the original.
    """

    def __init__(self):
        self._index: Dict[str, EnrichedFile] = {}

    def find_duplicate_of(self, file: EnrichedFile) -> Optional[EnrichedFile]:
        if not file.checksum:
            return None
        original = self._index.get(file.checksum.lower())
        if original is None or original.path == file.path:
            return None
        return original

    def register(self, file: EnrichedFile) -> None:
        if not file.checksum:
            logging.debug(f"{file.path.name} has no checksum, not indexed for duplicates")
            return
        self._index.setdefault(file.checksum.lower(), file)
