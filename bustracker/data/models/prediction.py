"""
Prediction data models.
Result values returned by the arrival-prediction engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class VehicleStatus(str, Enum):
    """Relationship of one vehicle's trajectory to the queried stop"""
    PASSED_STOP = "passed_stop"
    APPROACHING = "approaching"
    STATIONARY_NEAR = "stationary_near"
    AMBIGUOUS = "ambiguous"

    @property
    def is_candidate(self) -> bool:
        return self in (VehicleStatus.APPROACHING, VehicleStatus.STATIONARY_NEAR)


class PredictionErrorKind(str, Enum):
    STOP_NOT_FOUND = "stop_not_found"
    LINE_NOT_SERVING_STOP = "line_not_serving_stop"


@dataclass(frozen=True)
class ArrivalEstimate:
    """Road distance and travel time derived from a straight-line distance"""
    road_distance_meters: int
    eta_minutes: int


@dataclass(frozen=True)
class PredictionResult:
    """Arrival estimate for the closest vehicle, optionally with the runner-up"""
    line: str
    vehicle: str
    distance_meters: int = 0
    eta_minutes: int = 0
    second_closest: Optional['PredictionResult'] = None

    @classmethod
    def empty(cls, line: str) -> 'PredictionResult':
        """No live vehicle found for the line"""
        return cls(line=line, vehicle="")

    @property
    def has_vehicle(self) -> bool:
        return self.vehicle != ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "line": self.line,
            "vehicle": self.vehicle,
            "distanceMeters": self.distance_meters,
            "etaMinutes": self.eta_minutes,
        }
        if self.second_closest is not None:
            data["secondClosest"] = self.second_closest.to_dict()
        return data


@dataclass(frozen=True)
class PredictionOutcome:
    """Either a result or the reason a prediction could not be attempted"""
    result: Optional[PredictionResult] = None
    error: Optional[PredictionErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, result: PredictionResult) -> 'PredictionOutcome':
        return cls(result=result)

    @classmethod
    def failure(cls, error: PredictionErrorKind, message: str) -> 'PredictionOutcome':
        return cls(error=error, message=message)
