"""
Data layer module.
Exports all data layer components including models, sources, parsing and the store gateway.
"""

# Import all models
from .models import (
    ParsedPosition, PositionSample, StopLocation, LineRecord,
    VehicleStatus, PredictionErrorKind, ArrivalEstimate,
    PredictionResult, PredictionOutcome
)

# Import all data sources
from .sources import PositionFeedSource, read_legacy_line_map

# Feed parsing
from .parsing import ParseReport, parse_feed

# Import all repositories
from .repositories import PositionStore

__all__ = [
    # Models
    "ParsedPosition",
    "PositionSample",
    "StopLocation",
    "LineRecord",
    "VehicleStatus",
    "PredictionErrorKind",
    "ArrivalEstimate",
    "PredictionResult",
    "PredictionOutcome",

    # Sources
    "PositionFeedSource",
    "read_legacy_line_map",

    # Parsing
    "ParseReport",
    "parse_feed",

    # Repositories
    "PositionStore"
]
