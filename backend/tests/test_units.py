"""
Tests for the numeric utilities.
"""
import math
from datetime import date, datetime, timezone

import pytest

from trainload.services.analytics.units import (
    as_number,
    iso_week_number,
    km_to_miles,
    miles_to_km,
    minutes_between,
    mps_to_kmh,
    mps_to_pace,
    parse_date,
    round_metric,
    to_iso_date,
)


class TestRoundMetric:

    def test_two_decimals_by_default(self):
        assert round_metric(38.56126) == 38.56

    def test_half_rounds_away_from_zero(self):
        assert round_metric(2.675) == 2.68
        assert round_metric(-1.005) == -1.01
        assert round_metric(0.5, 0) == 1.0

    def test_missing_values_propagate(self):
        assert round_metric(None) is None
        assert round_metric(float("nan")) is None
        assert round_metric(math.inf) is None

    def test_integers(self):
        assert round_metric(7) == 7.0

    def test_large_magnitudes(self):
        assert round_metric(1e30) == 1e30
        assert round_metric(-3.6e28) == -3.6e28
        assert round_metric(10 ** 40) == 1e40
        assert round_metric(1.7e308) == 1.7e308


class TestAsNumber:

    def test_numbers(self):
        assert as_number(3) == 3.0
        assert as_number(2.5) == 2.5

    def test_non_numbers(self):
        assert as_number(True) is None
        assert as_number("3") is None
        assert as_number(float("inf")) is None

    def test_integer_too_large_for_float(self):
        assert as_number(10 ** 400) is None


class TestConversions:

    def test_km_miles(self):
        assert km_to_miles(10) == pytest.approx(6.21371)
        assert miles_to_km(6.21371) == pytest.approx(10)
        assert km_to_miles(None) is None

    def test_mps_to_kmh(self):
        assert mps_to_kmh(2.5) == 9.0
        assert mps_to_kmh(None) is None

    def test_pace(self):
        assert mps_to_pace(2.5) == 6.67

    def test_pace_undefined_for_non_positive_speed(self):
        assert mps_to_pace(0) is None
        assert mps_to_pace(-1.2) is None
        assert mps_to_pace(None) is None


class TestDates:

    def test_calendar_date_is_utc_midnight(self):
        parsed = parse_date("2024-03-10")
        assert parsed == datetime(2024, 3, 10, tzinfo=timezone.utc)

    def test_zulu_timestamp(self):
        parsed = parse_date("2024-03-10T08:15:00Z")
        assert parsed.hour == 8
        assert parsed.tzinfo is not None

    def test_offset_timestamp_normalized_to_utc(self):
        assert to_iso_date("2024-03-10T23:30:00-02:00") == "2024-03-11"

    def test_naive_timestamp_taken_as_utc(self):
        assert parse_date("2024-03-10T08:15:00").tzinfo == timezone.utc

    def test_invalid_input(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date("2024-02-30") is None
        assert parse_date(None) is None

    def test_date_objects(self):
        assert to_iso_date(date(2024, 1, 2)) == "2024-01-02"

    def test_minutes_between(self):
        assert minutes_between("2024-03-10T08:00:00Z", "2024-03-10T09:30:00Z") == 90.0

    def test_minutes_between_rejects_negative(self):
        assert minutes_between("2024-03-10T09:30:00Z", "2024-03-10T08:00:00Z") is None
        assert minutes_between("garbage", "2024-03-10T08:00:00Z") is None


class TestIsoWeekNumber:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2021-01-01", 53),
            ("2022-01-01", 52),
            ("2023-01-01", 52),
            ("2023-01-02", 1),
            ("2024-12-30", 1),
            ("2025-06-15", 24),
        ],
    )
    def test_year_boundaries(self, value, expected):
        assert iso_week_number(value) == expected

    def test_matches_isocalendar(self):
        for day in (date(2020, 12, 31), date(2026, 1, 1), date(2027, 1, 3)):
            assert iso_week_number(day) == day.isocalendar()[1]

    def test_invalid(self):
        assert iso_week_number("nope") is None
