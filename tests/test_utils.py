"""
Utility Tests
=============

Tests for the statistics, date and validation helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ErrorCodes, ValidationError
from app.utils.helpers import add_months, iter_buckets, parse_date, period_start
from app.utils.stats import (
    linear_regression,
    mean,
    median,
    mode,
    pearson_correlation,
    percent_growth,
    std_dev,
)
from app.utils.validators import validate_date_range, validate_file_size, validate_media_type


class TestStats:
    """Tests for the numeric helpers."""

    def test_empty_inputs_yield_zero(self):
        assert mean([]) == 0
        assert median([]) == 0
        assert mode([]) == 0
        assert std_dev([]) == 0
        assert linear_regression([]) == (0.0, 0.0)
        assert pearson_correlation([], []) == 0

    def test_median_even_and_odd(self):
        assert median([3, 1, 2]) == 2
        assert median([4, 1, 3, 2]) == 2.5

    def test_mode_tie_goes_to_first_seen(self):
        assert mode([5, 4, 4, 5]) == 5

    def test_std_dev_is_population(self):
        assert std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)

    def test_linear_regression_on_a_line(self):
        slope, intercept = linear_regression([1, 3, 5, 7])
        assert slope == pytest.approx(2.0)
        assert intercept == pytest.approx(1.0)

    def test_pearson_perfect_and_undefined(self):
        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert pearson_correlation([1, 1, 1], [2, 4, 6]) == 0

    def test_percent_growth_from_zero(self):
        assert percent_growth(50, 0) == 100.0
        assert percent_growth(0, 0) == 0.0
        assert percent_growth(150, 100) == pytest.approx(50.0)


class TestDateHelpers:
    """Tests for period and bucket helpers."""

    def test_parse_date_accepts_z_suffix(self):
        parsed = parse_date("2025-03-01T10:00:00Z")
        assert parsed == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)

    def test_parse_date_treats_naive_as_utc(self):
        assert parse_date("2025-03-01").tzinfo is not None

    def test_add_months_clamps_day(self):
        jan_31 = datetime(2025, 1, 31, tzinfo=timezone.utc)
        assert add_months(jan_31, 1) == datetime(2025, 2, 28, tzinfo=timezone.utc)
        assert add_months(jan_31, -2) == datetime(2024, 11, 30, tzinfo=timezone.utc)

    def test_period_start_is_calendar_aligned(self):
        end = datetime(2025, 8, 20, 15, 30, tzinfo=timezone.utc)
        assert period_start("month", end) == datetime(2025, 8, 1, tzinfo=timezone.utc)
        assert period_start("quarter", end) == datetime(2025, 7, 1, tzinfo=timezone.utc)
        assert period_start("year", end) == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert period_start("week", end) == end - timedelta(days=7)

    def test_iter_buckets_clips_last_window(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        buckets = iter_buckets(start, start + timedelta(days=10), 7)
        assert len(buckets) == 2
        assert buckets[1] == (start + timedelta(days=7), start + timedelta(days=10))


class TestValidators:
    """Tests for request validators."""

    def test_media_type_kinds(self):
        assert validate_media_type("image/jpeg") == "image"
        assert validate_media_type("video/mp4") == "video"
        assert validate_media_type("audio/mpeg") == "audio"

    def test_media_type_rejects_documents(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_media_type("application/pdf")
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_INVALID_MEDIA

    def test_file_size_limit(self):
        validate_file_size(25 * 1024 * 1024, 25)
        with pytest.raises(ValidationError) as exc_info:
            validate_file_size(25 * 1024 * 1024 + 1, 25)
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_MEDIA_TOO_LARGE

    def test_date_range(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        validate_date_range(start, start + timedelta(days=730), 730)
        with pytest.raises(ValidationError):
            validate_date_range(start, start, 730)
        with pytest.raises(ValidationError):
            validate_date_range(start, start + timedelta(days=731), 730)
