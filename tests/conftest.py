import pytest
from datetime import datetime
from pathlib import Path

from photo_copier.config import CopyOptions
from photo_copier.models import DateTimeSource, EnrichedFile, FileDateTime, FileKind, FileRecord


class StubExtractor:
    """Stands in for MetadataExtractor; answers by file name."""

    def __init__(self, dates=None, coords=None):
        self.dates = dates or {}
        self.coords = coords or {}

    def get_capture_datetime(self, path):
        return self.dates.get(path.name)

    def get_coordinates(self, path):
        return self.coords.get(path.name)


def make_enriched(path, taken, location=None, checksum=None, size=10):
    """Builds an EnrichedFile without touching the disk."""
    path = Path(path)
    record = FileRecord(path=path, size_bytes=size, modified=taken)
    return EnrichedFile(
        kind=FileKind.MEDIA,
        record=record,
        date=FileDateTime(taken, DateTimeSource.EMBEDDED_METADATA),
        location=location,
        checksum=checksum,
    )


@pytest.fixture
def src(tmp_path):
    """Empty source directory."""
    p = tmp_path / "src"
    p.mkdir()
    return p


@pytest.fixture
def dest(tmp_path):
    """Destination root; not created so tests can check it stays absent."""
    return tmp_path / "dest"


@pytest.fixture
def write_file():
    def _write(path: Path, data: bytes = b"data") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def make_options(src, dest):
    """Returns a CopyOptions factory bound to the src/dest fixtures."""
    def _make(**kwargs):
        return CopyOptions(source=src, destination=dest, **kwargs)
    return _make


@pytest.fixture
def stub_extractor():
    return StubExtractor(dates={
        "jan.jpg": datetime(2024, 1, 10, 9, 0, 0),
        "feb.jpg": datetime(2024, 2, 20, 9, 0, 0),
        "march.jpg": datetime(2024, 3, 30, 9, 0, 0),
    })
