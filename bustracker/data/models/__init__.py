"""
Data models module.
Exports all data model classes.
"""

from .position import ParsedPosition, PositionSample, StopLocation, LineRecord
from .prediction import (
    VehicleStatus, PredictionErrorKind, ArrivalEstimate,
    PredictionResult, PredictionOutcome
)

__all__ = [
    "ParsedPosition",
    "PositionSample",
    "StopLocation",
    "LineRecord",
    "VehicleStatus",
    "PredictionErrorKind",
    "ArrivalEstimate",
    "PredictionResult",
    "PredictionOutcome"
]
