from __future__ import annotations

import pytest

from bustracker.data.models.prediction import PredictionErrorKind, VehicleStatus
from bustracker.services.prediction_service import (
    PredictionService,
    classify_trajectory,
    estimate_arrival,
    group_trajectories,
    rank_candidates,
)
from conftest import NOW, STOP, sample


# --- classification -------------------------------------------------------

def test_close_approach_then_sharp_retreat_is_passed() -> None:
    assert classify_trajectory([500, 100, 50, 300, 600]) is VehicleStatus.PASSED_STOP


def test_monotonic_retreat_after_minimum_is_passed() -> None:
    # minimum never gets under 150m, but the vehicle keeps moving away
    assert classify_trajectory([400, 250, 300, 390, 480]) is VehicleStatus.PASSED_STOP


def test_retreat_within_jitter_tolerance_still_counts_as_retreat() -> None:
    assert classify_trajectory([300, 200, 260, 245, 420]) is VehicleStatus.PASSED_STOP


def test_small_retreat_is_not_passed() -> None:
    # moving away but by less than 200m: ambiguous, not passed
    assert classify_trajectory([400, 250, 300, 390]) is VehicleStatus.AMBIGUOUS


def test_approaching_vehicle_is_candidate() -> None:
    status = classify_trajectory([800, 600, 400, 250])

    assert status is VehicleStatus.APPROACHING
    assert status.is_candidate


def test_stationary_near_stop_is_candidate() -> None:
    status = classify_trajectory([90, 95])

    assert status is VehicleStatus.STATIONARY_NEAR
    assert status.is_candidate


def test_moving_away_far_from_stop_is_ambiguous() -> None:
    status = classify_trajectory([600, 650])

    assert status is VehicleStatus.AMBIGUOUS
    assert not status.is_candidate


def test_single_sample_accepted_only_when_close() -> None:
    assert classify_trajectory([499]) is VehicleStatus.APPROACHING
    assert classify_trajectory([500]) is VehicleStatus.AMBIGUOUS


def test_empty_trajectory_is_ambiguous() -> None:
    assert classify_trajectory([]) is VehicleStatus.AMBIGUOUS


# --- distance to time -----------------------------------------------------

def test_estimate_uses_short_tortuosity_below_500m() -> None:
    estimate = estimate_arrival(200)

    assert estimate.road_distance_meters == 240
    assert estimate.eta_minutes == 1


def test_estimate_uses_long_tortuosity_from_500m() -> None:
    estimate = estimate_arrival(2000)

    # 2700m road: 14.21 min driving + 1.62 min traffic
    assert estimate.road_distance_meters == 2700
    assert estimate.eta_minutes == 16


def test_farther_candidate_has_greater_eta() -> None:
    assert estimate_arrival(900).eta_minutes > estimate_arrival(300).eta_minutes


def test_zero_distance() -> None:
    estimate = estimate_arrival(0)

    assert estimate.road_distance_meters == 0
    assert estimate.eta_minutes == 0


# --- ranking --------------------------------------------------------------

def test_group_trajectories_orders_each_vehicle_by_time() -> None:
    samples = [sample("A", 300, 10), sample("B", 900, 60), sample("A", 500, 120), sample("A", 400, 60)]

    groups = group_trajectories(samples)

    assert [s.timestamp for s in groups["A"]] == sorted(s.timestamp for s in groups["A"])
    assert len(groups["B"]) == 1


def test_rank_candidates_discards_passed_and_orders_by_distance() -> None:
    samples = [
        # far but approaching
        sample("FAR", 1500, 120), sample("FAR", 1200, 30),
        # close and approaching
        sample("NEAR", 700, 120), sample("NEAR", 350, 30),
        # went through the stop and is leaving
        sample("GONE", 300, 180), sample("GONE", 40, 120), sample("GONE", 400, 30),
    ]

    ranked = rank_candidates(STOP, samples)

    assert [c.sample.vehicle_number for c in ranked] == ["NEAR", "FAR"]
    assert ranked[0].distance_meters == pytest.approx(350, abs=0.01)


# --- engine ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_stop(seeded_store) -> None:
    outcome = await PredictionService(seeded_store).predict("NOPE", "42", now=NOW)

    assert not outcome.ok
    assert outcome.error is PredictionErrorKind.STOP_NOT_FOUND


@pytest.mark.asyncio
async def test_line_must_serve_stop(seeded_store) -> None:
    outcome = await PredictionService(seeded_store).predict(STOP.code, "5101", now=NOW)

    assert outcome.error is PredictionErrorKind.LINE_NOT_SERVING_STOP
    assert "5101" in outcome.message


@pytest.mark.asyncio
async def test_no_recent_positions_is_empty_result(seeded_store) -> None:
    outcome = await PredictionService(seeded_store).predict(STOP.code, "42", now=NOW)

    assert outcome.ok
    assert outcome.result.vehicle == ""
    assert outcome.result.line == "42"
    assert outcome.result.second_closest is None


@pytest.mark.asyncio
async def test_end_to_end_single_vehicle(seeded_store) -> None:
    await seeded_store.append_positions([
        sample("20512", 1000, 180),
        sample("20512", 600, 90),
        sample("20512", 200, 0),
    ])

    outcome = await PredictionService(seeded_store).predict(STOP.code, "42", now=NOW)

    result = outcome.result
    assert result.vehicle == "20512"
    assert result.line == "42"
    assert result.distance_meters == 240
    assert result.eta_minutes == 1
    assert result.second_closest is None


@pytest.mark.asyncio
async def test_second_closest_is_attached(seeded_store) -> None:
    await seeded_store.append_positions([
        sample("A", 900, 120), sample("A", 300, 30),
        sample("B", 2500, 120), sample("B", 2000, 30),
        sample("C", 3000, 120), sample("C", 2900, 30),
    ])

    result = (await PredictionService(seeded_store).predict(STOP.code, "42", now=NOW)).result

    assert result.vehicle == "A"
    assert result.distance_meters == 360
    assert result.eta_minutes == 2
    assert result.second_closest.vehicle == "B"
    assert result.second_closest.distance_meters == 2700
    assert result.second_closest.eta_minutes == 16


@pytest.mark.asyncio
async def test_vehicles_that_passed_are_not_predicted(seeded_store) -> None:
    await seeded_store.append_positions([
        sample("GONE", 500, 240), sample("GONE", 100, 180), sample("GONE", 50, 120),
        sample("GONE", 300, 60), sample("GONE", 600, 0),
    ])

    result = (await PredictionService(seeded_store).predict(STOP.code, "42", now=NOW)).result

    assert result.vehicle == ""


@pytest.mark.asyncio
async def test_samples_outside_window_are_ignored(seeded_store) -> None:
    await seeded_store.append_positions([
        # an old approach that would otherwise look like a passed vehicle
        sample("20512", 40, 600),
        sample("20512", 450, 60),
    ])

    result = (await PredictionService(seeded_store, prediction_window_minutes=5).predict(STOP.code, "42", now=NOW)).result

    assert result.vehicle == "20512"
    assert result.distance_meters == 540


@pytest.mark.asyncio
async def test_line_query_is_case_insensitive_substring(seeded_store) -> None:
    await seeded_store.upsert_line("9900", "SC01A", "Circular")
    await seeded_store.link_line_stop("9900", STOP.code)
    await seeded_store.append_positions([sample("77", 250, 30, line="SC01A")])

    result = (await PredictionService(seeded_store).predict(STOP.code, " sc01 ", now=NOW)).result

    assert result.vehicle == "77"
    assert result.line == "SC01A"
