"""Tests for time-series utilities."""
import pytest
from datetime import datetime, timedelta, timezone

from models import Reading
from analytics.series import (
    clean_time_series,
    describe_metrics,
    detect_peaks,
    readings_frame,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_readings(pm25, humidity=None):
    humidity = humidity or [None] * len(pm25)
    return [
        Reading(
            timestamp=START + timedelta(minutes=i),
            entry_id=i + 1,
            pm25=p,
            humidity=h
        )
        for i, (p, h) in enumerate(zip(pm25, humidity))
    ]


def test_readings_frame_indexed_by_entry_id():
    """Test the frame is indexed by entry id with float metrics."""
    df = readings_frame(make_readings([1, 2, 3]))

    assert list(df.index) == [1, 2, 3]
    assert df["pm25"].tolist() == [1.0, 2.0, 3.0]
    assert df["noise"].isna().all()


def test_readings_frame_empty():
    """Test an empty input gives an empty frame."""
    assert readings_frame([]).empty


def test_clean_linear_interpolates():
    """Test linear cleaning fills interior and edge gaps."""
    cleaned = clean_time_series(make_readings([None, 2, None, 4]), method="linear")

    assert [r.pm25 for r in cleaned] == [2.0, 2.0, 3.0, 4.0]
    assert all(r.noise is None for r in cleaned)
    assert cleaned[0].timestamp == START


def test_clean_forward_fill():
    """Test forward fill carries the previous value."""
    cleaned = clean_time_series(make_readings([1, None, None, 4]), method="forward_fill")
    assert [r.pm25 for r in cleaned] == [1.0, 1.0, 1.0, 4.0]


def test_clean_drop():
    """Test drop removes rows missing any reported metric."""
    readings = make_readings([1, None, 3], humidity=[40, 41, None])
    cleaned = clean_time_series(readings, method="drop")

    assert [r.entry_id for r in cleaned] == [1]


def test_clean_unknown_method():
    """Test an unknown method is rejected."""
    with pytest.raises(ValueError):
        clean_time_series(make_readings([1, 2]), method="spline")


def test_detect_peaks():
    """Test values above mean + 1.5 std are reported highest first."""
    values = [10, 11, 9, 10, 60, 10, 40, 10, 11, 9]
    peaks = detect_peaks(make_readings(values))

    assert [p["value"] for p in peaks] == [60.0]
    assert peaks[0]["entry_id"] == 5
    assert peaks[0]["metric"] == "pm25"


def test_detect_peaks_needs_two_points():
    """Test a single sample has no peaks."""
    assert detect_peaks(make_readings([100])) == []


def test_describe_metrics():
    """Test descriptive statistics for reported metrics only."""
    stats = describe_metrics(make_readings([1, 2, 3, None]))

    assert set(stats) == {"pm25"}
    assert stats["pm25"]["median"] == 2.0
    assert stats["pm25"]["count"] == 3
    assert stats["pm25"]["std"] == pytest.approx(0.8165, rel=1e-3)
