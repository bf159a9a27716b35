import hashlib
from pathlib import Path

from .. import config


class FileHasher:
    """Content fingerprint used for duplicate detection and copy verification."""

    algorithm = "sha256"

    def compute_checksum(self, path: Path) -> str:
        """
        Reads the entire file in chunks and returns the hex digest.
        Raises OSError if the file cannot be read.
        """
        h = hashlib.new(self.algorithm)
        with open(path, 'rb') as f:
            while chunk := f.read(config.HASH_CHUNK_SIZE):
                h.update(chunk)
        return h.hexdigest()
