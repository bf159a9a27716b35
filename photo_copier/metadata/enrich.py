"""
Metadata enrichment pipeline.

A fixed, ordered list of steps folded over a per-file context. Each step
fills in at most one attribute; a step that finds nothing leaves the
attribute alone, and a step that blows up is logged and skipped so the
file still comes out the other end.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..config import CopyOptions
from ..models import DateTimeSource, EnrichedFile, FileDateTime, FileKind, FileRecord, GeoLocation
from ..scanning.hasher import FileHasher
from .extract import MetadataExtractor
from .geocode import ReverseGeocoder


@dataclass
class EnrichmentContext:
    record: FileRecord
    date: FileDateTime
    location: Optional[GeoLocation] = None
    checksum: Optional[str] = None


class DateTimeStep:
    """Embedded capture date, else filesystem creation time, else modification time."""

    name = "datetime"

    def __init__(self, extractor: MetadataExtractor):
        self.extractor = extractor

    def __call__(self, ctx: EnrichmentContext) -> None:
        taken = self.extractor.get_capture_datetime(ctx.record.path)
        if taken is not None:
            ctx.date = FileDateTime(taken, DateTimeSource.EMBEDDED_METADATA)
        else:
            logging.debug(f"No embedded date in {ctx.record.path}, using filesystem time")
            ctx.date = FileDateTime.from_filesystem(ctx.record)


class LocationStep:
    name = "location"

    def __init__(self, extractor: MetadataExtractor, geocoder: Optional[ReverseGeocoder] = None):
        self.extractor = extractor
        self.geocoder = geocoder

    def __call__(self, ctx: EnrichmentContext) -> None:
        coords = self.extractor.get_coordinates(ctx.record.path)
        if coords is None:
            return

        lat, lon = coords
        ctx.location = GeoLocation(lat, lon)
        if self.geocoder is None:
            return

        try:
            named = self.geocoder.resolve(lat, lon)
        except Exception as e:
            logging.warning(f"Geocoder error for {ctx.record.path}: {e}")
            return
        if named is not None:
            ctx.location = named


class ChecksumStep:
    name = "checksum"

    def __init__(self, hasher: FileHasher, enabled: bool):
        self.hasher = hasher
        self.enabled = enabled

    def __call__(self, ctx: EnrichmentContext) -> None:
        if not self.enabled:
            return
        try:
            ctx.checksum = self.hasher.compute_checksum(ctx.record.path)
        except OSError as e:
            logging.warning(f"Could not checksum {ctx.record.path}: {e}")


class MetadataEnricher:
    def __init__(self, steps: Iterable):
        self.steps: List = list(steps)

    def enrich(self, record: FileRecord) -> EnrichedFile:
        ctx = EnrichmentContext(record=record, date=FileDateTime.from_filesystem(record))

        for step in self.steps:
            try:
                step(ctx)
            except Exception as e:
                logging.warning(f"Enrichment step '{getattr(step, 'name', step)}' failed for {record.path}: {e}")

        return EnrichedFile(
            kind=FileKind.MEDIA,
            record=record,
            date=ctx.date,
            location=ctx.location,
            checksum=ctx.checksum,
        )


def build_enricher(options: CopyOptions,
                   extractor: Optional[MetadataExtractor] = None,
                   geocoder: Optional[ReverseGeocoder] = None,
                   hasher: Optional[FileHasher] = None) -> MetadataEnricher:
    """Standard step order: date, location, checksum."""
    extractor = extractor or MetadataExtractor()
    if geocoder is None and options.geocode:
        geocoder = ReverseGeocoder()

    return MetadataEnricher([
        DateTimeStep(extractor),
        LocationStep(extractor, geocoder),
        ChecksumStep(hasher or FileHasher(), options.calculate_checksums),
    ])
