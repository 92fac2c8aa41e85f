from __future__ import annotations

from datetime import datetime

import pytz

from bustracker.data.parsing import parse_coordinate, parse_feed, parse_feed_timestamp

HEADER = "EV;HR;LT;LG;NV;VL;NL;DG;SV;DT"


def _row(ts="20260302120000", lat="-19,9167", lon="-43,9378", vehicle="20512", line="  812 ") -> str:
    return f"105;{ts};{lat};{lon};{vehicle};0;{line};0;1;0"


def test_fixed_pattern_is_local_time_converted_to_utc() -> None:
    ts = parse_feed_timestamp("20260302120000")

    assert ts == datetime(2026, 3, 2, 15, 0, 0, tzinfo=pytz.utc)


def test_timestamp_offset_is_configurable() -> None:
    ts = parse_feed_timestamp("20260302120000", utc_offset_minutes=60)

    assert ts == datetime(2026, 3, 2, 11, 0, 0, tzinfo=pytz.utc)


def test_timestamp_generic_fallbacks() -> None:
    assert parse_feed_timestamp("2026-03-02 12:00:00") == datetime(2026, 3, 2, 15, 0, tzinfo=pytz.utc)
    assert parse_feed_timestamp("2026-03-02T12:00:00") == datetime(2026, 3, 2, 15, 0, tzinfo=pytz.utc)
    assert parse_feed_timestamp("03/02/2026 12:00:00") == datetime(2026, 3, 2, 15, 0, tzinfo=pytz.utc)
    # an explicit offset wins over the feed's civil time
    assert parse_feed_timestamp("2026-03-02T12:00:00+00:00") == datetime(2026, 3, 2, 12, 0, tzinfo=pytz.utc)


def test_unparseable_timestamp() -> None:
    assert parse_feed_timestamp("yesterday") is None
    assert parse_feed_timestamp("") is None


def test_comma_decimal_coordinates() -> None:
    assert parse_coordinate("-19,9167") == -19.9167
    assert parse_coordinate("-43.9378") == -43.9378
    assert parse_coordinate("abc") is None
    assert parse_coordinate("nan") is None


def test_parse_feed_skips_header_and_normalizes_rows() -> None:
    payload = "\r\n".join([HEADER, _row(), _row(vehicle="20513", line="9001")]) + "\r\n"

    report = parse_feed(payload)

    assert report.total_rows == 2
    assert report.skipped_rows == 0
    first = report.positions[0]
    assert first.timestamp == datetime(2026, 3, 2, 15, 0, tzinfo=pytz.utc)
    assert first.latitude == -19.9167
    assert first.longitude == -43.9378
    assert first.vehicle_number == "20512"
    assert first.raw_line_code == "812"
    assert report.positions[1].raw_line_code == "9001"


def test_malformed_rows_are_counted_and_skipped() -> None:
    payload = "\n".join([
        HEADER,
        _row(),
        "105;20260302120000;-19,9;-43,9;20512;0",  # too few columns
        _row(ts="not-a-date"),
        _row(lat="north"),
        _row(lon=""),
        _row(line="   "),
        _row(vehicle="30001"),
    ])

    report = parse_feed(payload)

    assert report.total_rows == 7
    assert report.skipped_rows == 5
    assert [p.vehicle_number for p in report.positions] == ["20512", "30001"]


def test_header_only_or_empty_payload() -> None:
    assert parse_feed(HEADER).positions == []
    assert parse_feed("").total_rows == 0


def test_fixed_pattern_requires_all_fourteen_digits() -> None:
    assert parse_feed_timestamp("2026030212030") is None
    assert parse_feed_timestamp("202603021203000") is None
    assert parse_feed_timestamp("20261302120000") is None


def test_timestamp_outside_datetime_range_is_rejected() -> None:
    # local end of year 9999 at UTC-3 lands in year 10000 once converted
    assert parse_feed_timestamp("99991231235959") is None
    assert parse_feed_timestamp("0001-01-01T00:00:00+05:00") is None


def test_out_of_range_timestamp_only_skips_its_row() -> None:
    payload = "\n".join([HEADER, _row(), _row(ts="99991231235959", vehicle="20599")])

    report = parse_feed(payload)

    assert report.total_rows == 2
    assert report.skipped_rows == 1
    assert [p.vehicle_number for p in report.positions] == ["20512"]
