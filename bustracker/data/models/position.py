"""
Position data models.
Immutable data structures for vehicle observations and the static reference data they are matched against.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ParsedPosition:
    """One feed row after parsing, before its line code is translated"""
    timestamp: datetime  # UTC
    latitude: float
    longitude: float
    vehicle_number: str
    raw_line_code: str

    def with_line(self, line_number: str) -> 'PositionSample':
        """Build the stored sample once the raw line code has been translated"""
        return PositionSample(
            timestamp=self.timestamp,
            line_number=line_number,
            vehicle_number=self.vehicle_number,
            latitude=self.latitude,
            longitude=self.longitude,
        )


@dataclass(frozen=True)
class PositionSample:
    """Immutable vehicle observation with a canonical display line number"""
    timestamp: datetime  # UTC
    line_number: str
    vehicle_number: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class StopLocation:
    """Static stop reference data"""
    code: str
    latitude: float
    longitude: float
    name: str = ""


@dataclass(frozen=True)
class LineRecord:
    """A canonical line: external system id and the number shown to riders"""
    external_id: str
    display_number: str
    name: str = ""
