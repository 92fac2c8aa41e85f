"""
Arrival prediction service.
Reconstructs recent per-vehicle trajectories for a line, discards vehicles that
have already passed the stop, and estimates arrival for the closest survivors.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import pytz

from ..data.models.position import PositionSample, StopLocation
from ..data.models.prediction import (
    ArrivalEstimate, PredictionErrorKind, PredictionOutcome,
    PredictionResult, VehicleStatus
)
from ..data.repositories.position_store import PositionStore
from ..utils.geo import haversine_meters

logger = logging.getLogger(__name__)

# Passed-stop detection
STOP_PROXIMITY_THRESHOLD_METERS = 150.0
MOVING_AWAY_MULTIPLIER = 1.5
MOVING_AWAY_MIN_DELTA_METERS = 100.0
MIN_POSITIONS_FOR_TRAJECTORY_ANALYSIS = 3
MIN_POSITIONS_AFTER_MIN = 2
DISTANCE_TOLERANCE_METERS = 20.0
PASSED_STOP_DELTA_METERS = 200.0

# Candidate acceptance
CLOSE_PROXIMITY_METERS = 100.0
STATIONARY_TOLERANCE_METERS = 30.0
SINGLE_POSITION_MAX_DISTANCE_METERS = 500.0

# Distance to time
SHORT_DISTANCE_THRESHOLD_METERS = 500.0
SHORT_DISTANCE_TORTUOSITY = 1.2
LONG_DISTANCE_TORTUOSITY = 1.35
AVERAGE_SPEED_METERS_PER_MINUTE = 190.0
TRAFFIC_DELAY_MINUTES_PER_KM = 0.6


@dataclass(frozen=True)
class Candidate:
    """A vehicle still expected at the stop"""
    sample: PositionSample  # most recent observation
    distance_meters: float
    status: VehicleStatus


def estimate_arrival(straight_distance_meters: float) -> ArrivalEstimate:
    """
    Convert a straight-line distance into an estimated road distance and travel time.

    Road distance applies a tortuosity factor (tighter for short hops); travel time
    is road distance at average bus speed plus a per-kilometre traffic penalty.
    """
    tortuosity = (SHORT_DISTANCE_TORTUOSITY
                  if straight_distance_meters < SHORT_DISTANCE_THRESHOLD_METERS
                  else LONG_DISTANCE_TORTUOSITY)
    road_distance = straight_distance_meters * tortuosity
    minutes = road_distance / AVERAGE_SPEED_METERS_PER_MINUTE
    minutes += (road_distance / 1000) * TRAFFIC_DELAY_MINUTES_PER_KM
    return ArrivalEstimate(road_distance_meters=int(round(road_distance)), eta_minutes=int(round(minutes)))


def _has_passed_stop(distances: Sequence[float]) -> bool:
    current = distances[-1]
    min_distance = min(distances)
    min_index = distances.index(min_distance)

    # Close approach then a sharp retreat
    if (min_distance < STOP_PROXIMITY_THRESHOLD_METERS
            and current > min_distance * MOVING_AWAY_MULTIPLIER
            and current > min_distance + MOVING_AWAY_MIN_DELTA_METERS):
        return True

    if len(distances) < MIN_POSITIONS_FOR_TRAJECTORY_ANALYSIS:
        return False

    after_min = distances[min_index:]
    if len(after_min) < MIN_POSITIONS_AFTER_MIN:
        return False

    # Steady retreat from the closest point, allowing for GPS jitter
    moving_away = all(
        after_min[i] >= after_min[i - 1] - DISTANCE_TOLERANCE_METERS
        for i in range(1, len(after_min))
    )
    return moving_away and current > min_distance + PASSED_STOP_DELTA_METERS


def classify_trajectory(distances: Sequence[float]) -> VehicleStatus:
    """
    Classify a vehicle from its time-ordered distances to the stop (oldest first).
    """
    if not distances:
        return VehicleStatus.AMBIGUOUS
    if _has_passed_stop(distances):
        return VehicleStatus.PASSED_STOP

    current = distances[-1]
    if len(distances) == 1:
        if current < SINGLE_POSITION_MAX_DISTANCE_METERS:
            return VehicleStatus.APPROACHING
        return VehicleStatus.AMBIGUOUS

    previous = distances[-2]
    if current < previous:
        return VehicleStatus.APPROACHING
    if current < CLOSE_PROXIMITY_METERS and abs(current - previous) < STATIONARY_TOLERANCE_METERS:
        return VehicleStatus.STATIONARY_NEAR
    return VehicleStatus.AMBIGUOUS


def group_trajectories(samples: Sequence[PositionSample]) -> Dict[str, List[PositionSample]]:
    """Group samples by vehicle, each group ordered ascending by timestamp"""
    groups: Dict[str, List[PositionSample]] = defaultdict(list)
    for sample in samples:
        groups[sample.vehicle_number].append(sample)
    for trajectory in groups.values():
        trajectory.sort(key=lambda s: s.timestamp)
    return dict(groups)


def rank_candidates(stop: StopLocation, samples: Sequence[PositionSample]) -> List[Candidate]:
    """Classify every vehicle against the stop and return the survivors, closest first"""
    candidates: List[Candidate] = []
    for vehicle, trajectory in group_trajectories(samples).items():
        distances = [
            haversine_meters(stop.latitude, stop.longitude, s.latitude, s.longitude)
            for s in trajectory
        ]
        status = classify_trajectory(distances)
        logger.debug(f"Vehicle {vehicle}: {status.value} ({len(distances)} samples, current {distances[-1]:.0f}m)")
        if status.is_candidate:
            candidates.append(Candidate(sample=trajectory[-1], distance_meters=distances[-1], status=status))

    candidates.sort(key=lambda c: c.distance_meters)
    return candidates


def _to_result(candidate: Candidate) -> PredictionResult:
    estimate = estimate_arrival(candidate.distance_meters)
    return PredictionResult(
        line=candidate.sample.line_number,
        vehicle=candidate.sample.vehicle_number,
        distance_meters=estimate.road_distance_meters,
        eta_minutes=estimate.eta_minutes,
    )


def build_result(line_number: str, candidates: Sequence[Candidate]) -> PredictionResult:
    if not candidates:
        return PredictionResult.empty(line_number)
    best = _to_result(candidates[0])
    if len(candidates) > 1:
        return PredictionResult(
            line=best.line,
            vehicle=best.vehicle,
            distance_meters=best.distance_meters,
            eta_minutes=best.eta_minutes,
            second_closest=_to_result(candidates[1]),
        )
    return best


class PredictionService:
    """Answer "when will line L reach stop S" from recently stored positions. Read-only."""

    def __init__(self, store: PositionStore, prediction_window_minutes: float = 5):
        self.store = store
        self.prediction_window = timedelta(minutes=prediction_window_minutes)
        self._prediction_stats = {"predictions_made": 0, "empty_results": 0, "rejected": 0}

    async def predict(self, stop_code: str, line_number: str,
                      now: Optional[datetime] = None) -> PredictionOutcome:
        """Predict the closest (and second closest) arrival of ``line_number`` at ``stop_code``"""
        stop = await self.store.find_stop(stop_code)
        if stop is None:
            self._prediction_stats["rejected"] += 1
            return PredictionOutcome.failure(PredictionErrorKind.STOP_NOT_FOUND, "Stop not found.")

        if not await self.store.line_serves_stop(stop.code, line_number):
            self._prediction_stats["rejected"] += 1
            return PredictionOutcome.failure(
                PredictionErrorKind.LINE_NOT_SERVING_STOP,
                f"Line {line_number} does not serve stop {stop_code}."
            )

        now = now or datetime.now(pytz.utc)
        samples = await self.store.query_positions(line_number, now - self.prediction_window, now)
        candidates = rank_candidates(stop, samples) if samples else []
        result = build_result(line_number, candidates)

        self._prediction_stats["predictions_made"] += 1
        if not result.has_vehicle:
            self._prediction_stats["empty_results"] += 1
        logger.debug(f"Prediction for line {line_number} at stop {stop_code}: "
                     f"{len(samples)} samples, {len(candidates)} candidates")
        return PredictionOutcome.success(result)

    def get_prediction_stats(self) -> Dict[str, int]:
        return dict(self._prediction_stats)
