"""
Feed parsing for the position feed.
Turns one raw ';'-delimited payload into normalized, not-yet-translated position records.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pytz

from .models.position import ParsedPosition

logger = logging.getLogger(__name__)

MIN_COLUMNS = 7
TIMESTAMP_COLUMN = 1
LATITUDE_COLUMN = 2
LONGITUDE_COLUMN = 3
VEHICLE_COLUMN = 4
LINE_CODE_COLUMN = 6

FEED_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
FEED_TIMESTAMP_LENGTH = 14
# Locale-free fallbacks tried after the fixed pattern and ISO 8601
FALLBACK_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y",
)

_LINE_SPLIT = re.compile(r"[\r\n]+")


@dataclass
class ParseReport:
    """Outcome of parsing one payload"""
    positions: List[ParsedPosition] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0


def _parse_local_timestamp(value: str) -> Optional[datetime]:
    # all-digit values must match the fixed pattern exactly; strptime alone accepts single-digit fields
    if value.isdigit():
        if len(value) != FEED_TIMESTAMP_LENGTH:
            return None
        try:
            return datetime.strptime(value, FEED_TIMESTAMP_FORMAT)
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in FALLBACK_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_feed_timestamp(value: str, utc_offset_minutes: int = -180) -> Optional[datetime]:
    """
    Parse a feed timestamp reported in the feed's civil time and convert it to UTC.

    Tries the fixed ``yyyyMMddHHmmss`` pattern first, then generic formats.
    Values that already carry an offset are converted directly.

    Returns:
        Timezone-aware UTC datetime, or None when the value cannot be parsed
    """
    value = (value or "").strip()
    if not value:
        return None
    parsed = _parse_local_timestamp(value)
    if parsed is None:
        return None
    try:
        if parsed.tzinfo is None:
            parsed = pytz.FixedOffset(utc_offset_minutes).localize(parsed)
        return parsed.astimezone(pytz.utc)
    except (OverflowError, ValueError):
        # shifting to UTC fell outside the datetime range
        return None


def parse_coordinate(value: str) -> Optional[float]:
    """Parse a comma-decimal coordinate such as ``-19,9167``"""
    value = (value or "").strip().replace(",", ".")
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_row(line: str, utc_offset_minutes: int = -180) -> Optional[ParsedPosition]:
    """Parse one data row. Returns None when any required field is unusable."""
    columns = line.split(";")
    if len(columns) < MIN_COLUMNS:
        return None

    timestamp = parse_feed_timestamp(columns[TIMESTAMP_COLUMN], utc_offset_minutes)
    if timestamp is None:
        return None

    latitude = parse_coordinate(columns[LATITUDE_COLUMN])
    longitude = parse_coordinate(columns[LONGITUDE_COLUMN])
    if latitude is None or longitude is None:
        return None

    raw_line_code = columns[LINE_CODE_COLUMN].strip()
    if not raw_line_code:
        return None

    return ParsedPosition(
        timestamp=timestamp,
        latitude=latitude,
        longitude=longitude,
        vehicle_number=columns[VEHICLE_COLUMN],
        raw_line_code=raw_line_code,
    )


def parse_feed(payload: str, utc_offset_minutes: int = -180) -> ParseReport:
    """
    Parse a whole feed payload. The first line is a header and is discarded.
    Malformed rows are counted and skipped, never aborting the batch.
    """
    report = ParseReport()
    if not payload:
        return report

    lines = [line for line in _LINE_SPLIT.split(payload) if line]
    for index, line in enumerate(lines[1:], start=1):
        report.total_rows += 1
        position = parse_row(line, utc_offset_minutes)
        if position is None:
            report.skipped_rows += 1
            logger.debug(f"Skipping feed row {index}: {line[:80]!r}")
            continue
        report.positions.append(position)

    return report
