import json
import logging
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import exifread
from PIL import Image
from pymediainfo import MediaInfo

from .. import config

Coordinates = Tuple[float, float]

# Pillow tag ids (EXIF 2.3)
_PIL_EXIF_IFD = 0x8769
_PIL_GPS_IFD = 0x8825
_PIL_DATE_TAGS = [
    (_PIL_EXIF_IFD, 0x9003),  # DateTimeOriginal
    (_PIL_EXIF_IFD, 0x9004),  # DateTimeDigitized
    (None, 0x0132),           # DateTime
]

# ISO 6709 as written by phones into video containers: +37.7749-122.4194+010.000/
_ISO6709_RE = re.compile(r'([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)')


class MetadataExtractor:
    """
    Best-effort access to metadata embedded in media files.

    Strategies:
      - Images: 'exifread' first, Pillow's EXIF reader for formats exifread skips.
      - Video: 'pymediainfo' -> falls back to 'exiftool' when installed.

    Every public method returns None when the information is not there;
    a missing tag or an unsupported format is never an error.
    """

    def __init__(self):
        # Date and GPS steps ask for the same file back to back
        self._tag_cache: Tuple[Optional[Path], Dict[str, Any]] = (None, {})

    def get_capture_datetime(self, path: Path) -> Optional[datetime]:
        if self._is_video(path):
            return self._video_metadata(path)['dt']

        dt = self._parse_exif_date(self._exif_tags(path))
        if dt is None:
            dt = self._pillow_datetime(path)
        return dt

    def get_coordinates(self, path: Path) -> Optional[Coordinates]:
        if self._is_video(path):
            return self._video_metadata(path)['coords']

        coords = self._parse_exif_gps(self._exif_tags(path))
        if coords is None:
            coords = self._pillow_coordinates(path)
        return coords

    # --- Images ---

    def _exif_tags(self, path: Path) -> Dict[str, Any]:
        cached_path, cached_tags = self._tag_cache
        if cached_path == path:
            return cached_tags

        tags: Dict[str, Any] = {}
        try:
            with path.open('rb') as f:
                # details=False skips MakerNotes, GPS is still parsed
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {path}: {e}")

        self._tag_cache = (path, tags)
        return tags

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                dt = parse_exif_datetime(str(tags[tag]))
                if dt:
                    return dt
        return None

    def _parse_exif_gps(self, tags) -> Optional[Coordinates]:
        if 'GPS GPSLatitude' not in tags or 'GPS GPSLongitude' not in tags:
            return None

        lat_ref = str(tags.get('GPS GPSLatitudeRef', 'N'))
        lon_ref = str(tags.get('GPS GPSLongitudeRef', 'E'))
        lat = dms_to_decimal(tags['GPS GPSLatitude'].values, lat_ref)
        lon = dms_to_decimal(tags['GPS GPSLongitude'].values, lon_ref)
        return _valid_coordinates(lat, lon)

    def _pillow_datetime(self, path: Path) -> Optional[datetime]:
        try:
            with Image.open(path) as im:
                exif = im.getexif()
                for ifd, tag in _PIL_DATE_TAGS:
                    source = exif.get_ifd(ifd) if ifd else exif
                    value = source.get(tag)
                    if value:
                        dt = parse_exif_datetime(str(value))
                        if dt:
                            return dt
        except Exception as e:
            logging.debug(f"Pillow could not read EXIF date from {path}: {e}")
        return None

    def _pillow_coordinates(self, path: Path) -> Optional[Coordinates]:
        try:
            with Image.open(path) as im:
                gps = im.getexif().get_ifd(_PIL_GPS_IFD)
        except Exception as e:
            logging.debug(f"Pillow could not read GPS from {path}: {e}")
            return None

        if 2 not in gps or 4 not in gps:
            return None
        lat = dms_to_decimal(gps[2], str(gps.get(1, 'N')))
        lon = dms_to_decimal(gps[4], str(gps.get(3, 'E')))
        return _valid_coordinates(lat, lon)

    # --- Video ---

    def _is_video(self, path: Path) -> bool:
        return path.suffix.lower() in config.VIDEO_EXTS

    def _video_metadata(self, path: Path) -> Dict[str, Any]:
        # Strategy 1: MediaInfo (fastest, usually sufficient)
        try:
            mi_data = self._extract_mediainfo(path)
            if mi_data['dt'] or mi_data['coords']:
                return mi_data
        except Exception as e:
            logging.debug(f"MediaInfo failed for {path}: {e}")

        # Strategy 2: ExifTool (requires system install)
        try:
            return self._extract_exiftool(path)
        except Exception as e:
            # Debug only, the tool is often simply not installed
            logging.debug(f"ExifTool failed for {path}: {e}")

        return {'dt': None, 'coords': None}

    def _extract_mediainfo(self, path: Path) -> Dict[str, Any]:
        """Parses video using pymediainfo."""
        mi = MediaInfo.parse(str(path))
        data: Dict[str, Any] = {'dt': None, 'coords': None}

        for track in mi.tracks:
            if track.track_type != "General":
                continue

            # Different cameras write to different tags
            for field in ("recorded_date", "encoded_date", "tagged_date"):
                val = getattr(track, field, None)
                if val:
                    dt = parse_flexible_date(str(val))
                    if dt:
                        data['dt'] = dt
                        break

            for field in ("xyz", "comapplequicktimelocationiso6709"):
                val = getattr(track, field, None)
                if val:
                    data['coords'] = parse_iso6709(str(val))
                    if data['coords']:
                        break
        return data

    def _extract_exiftool(self, path: Path) -> Dict[str, Any]:
        """
        Wraps the 'exiftool' command line utility.
        Must be installed and on the system PATH.
        """
        # -j = JSON output, -n = no formatting (decimal GPS, clean dates)
        cmd = ["exiftool", "-j", "-n", str(path)]
        out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True)
        data_list = json.loads(out)

        data: Dict[str, Any] = {'dt': None, 'coords': None}
        if not data_list:
            return data

        tags = data_list[0]
        for field in ("DateTimeOriginal", "CreateDate", "CreationDate", "MediaCreateDate"):
            if tags.get(field):
                dt = parse_flexible_date(str(tags[field]))
                if dt:
                    data['dt'] = dt
                    break

        try:
            data['coords'] = _valid_coordinates(
                float(tags["GPSLatitude"]), float(tags["GPSLongitude"])
            )
        except (KeyError, TypeError, ValueError):
            pass

        return data


def parse_exif_datetime(value: str) -> Optional[datetime]:
    """EXIF format is "YYYY:MM:DD HH:MM:SS", sometimes with sub-seconds or a zone."""
    value = value.strip().rstrip('\x00')
    if not value:
        return None
    try:
        return datetime.strptime(value[:19], "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None


def parse_flexible_date(dt_str: str) -> Optional[datetime]:
    """
    Handles various date formats (ISO, UTC suffixes, Exiftool quirks).
    Returns a naive datetime object.
    """
    if not dt_str:
        return None

    clean = dt_str.replace("UTC", "").strip()

    # 1. ISO format (e.g. 2020-01-01T12:00:00)
    try:
        dt = datetime.fromisoformat(clean.replace("Z", "+00:00"))
        return dt.replace(tzinfo=None)
    except ValueError:
        pass

    # 2. EXIF style "YYYY:MM:DD HH:MM:SS"
    return parse_exif_datetime(clean)


def parse_iso6709(value: str) -> Optional[Coordinates]:
    match = _ISO6709_RE.match(value.strip())
    if not match:
        return None
    return _valid_coordinates(float(match.group(1)), float(match.group(2)))


def dms_to_decimal(values, ref: str) -> Optional[float]:
    """Degrees/minutes/seconds rationals to signed decimal degrees."""
    try:
        parts = [float(v) for v in list(values)[:3]]
        while len(parts) < 3:
            parts.append(0.0)
        degrees, minutes, seconds = parts
    except (TypeError, ValueError, ZeroDivisionError):
        return None

    decimal = degrees + minutes / 60.0 + seconds / 3600.0
    if ref.strip().upper() in ('S', 'W'):
        decimal = -decimal
    return decimal


def _valid_coordinates(lat: Optional[float], lon: Optional[float]) -> Optional[Coordinates]:
    if lat is None or lon is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    # Cameras without a fix often write 0/0
    if lat == 0.0 and lon == 0.0:
        return None
    return lat, lon
