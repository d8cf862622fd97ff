"""Photo metadata extraction from EXIF.

Pulls capture time, GPS position and device make/model out of a photo.
Unreadable or absent metadata yields empty fields; extraction never
raises, because missing metadata is itself a signal the pre-checks use.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from PIL import Image, UnidentifiedImageError

from seek.models.bounty import PhotoMetadata


logger = logging.getLogger(__name__)

# EXIF tag ids
_TAG_MAKE = 0x010F
_TAG_MODEL = 0x0110
_TAG_DATETIME = 0x0132
_IFD_EXIF = 0x8769
_IFD_GPS = 0x8825
_TAG_DATETIME_ORIGINAL = 0x9003
_TAG_DATETIME_DIGITIZED = 0x9004
_TAG_OFFSET_TIME_ORIGINAL = 0x9011
_GPS_LAT_REF = 1
_GPS_LAT = 2
_GPS_LON_REF = 3
_GPS_LON = 4

_EXIF_TIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class MetadataExtractor(Protocol):
    def extract(self, photo_bytes: bytes) -> PhotoMetadata:
        ...


class PillowMetadataExtractor:
    """Reads EXIF with Pillow.

    Capture time preference: DateTimeOriginal, DateTimeDigitized, then
    DateTime. EXIF times without an OffsetTimeOriginal tag are taken as UTC.
    """

    def extract(self, photo_bytes: bytes) -> PhotoMetadata:
        try:
            with Image.open(io.BytesIO(photo_bytes)) as img:
                exif = img.getexif()
                base = dict(exif)
                exif_ifd = dict(exif.get_ifd(_IFD_EXIF))
                gps_ifd = dict(exif.get_ifd(_IFD_GPS))
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("EXIF extraction failed: %s", exc)
            return PhotoMetadata()

        offset = _clean_text(exif_ifd.get(_TAG_OFFSET_TIME_ORIGINAL))
        captured = None
        for raw in (
            exif_ifd.get(_TAG_DATETIME_ORIGINAL),
            exif_ifd.get(_TAG_DATETIME_DIGITIZED),
            base.get(_TAG_DATETIME),
        ):
            captured = parse_exif_datetime(raw, offset)
            if captured is not None:
                break

        latitude = gps_to_decimal(gps_ifd.get(_GPS_LAT), gps_ifd.get(_GPS_LAT_REF))
        longitude = gps_to_decimal(gps_ifd.get(_GPS_LON), gps_ifd.get(_GPS_LON_REF))

        return PhotoMetadata(
            captured_utc=captured,
            latitude=latitude,
            longitude=longitude,
            device_make=_clean_text(base.get(_TAG_MAKE)),
            device_model=_clean_text(base.get(_TAG_MODEL)),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_exif_datetime(raw: Any, offset: Optional[str] = None) -> Optional[datetime]:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` string into an aware datetime."""
    text = _clean_text(raw)
    if not text:
        return None
    try:
        parsed = datetime.strptime(text[:19], _EXIF_TIME_FORMAT)
    except ValueError:
        return None
    tz = _parse_offset(offset) or timezone.utc
    try:
        return parsed.replace(tzinfo=tz).astimezone(timezone.utc)
    except OverflowError:
        return None


def gps_to_decimal(dms: Any, ref: Any) -> Optional[float]:
    """Convert an EXIF (degrees, minutes, seconds) triple to decimal degrees."""
    if not dms:
        return None
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60.0 + seconds / 3600.0
    if _clean_text(ref) in ("S", "W"):
        value = -value
    return value


def _parse_offset(offset: Optional[str]) -> Optional[timezone]:
    # "+02:00" / "-05:30"
    if not offset or len(offset) < 6 or offset[0] not in "+-":
        return None
    try:
        hours = int(offset[1:3])
        minutes = int(offset[4:6])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(delta if offset[0] == "+" else -delta)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None
