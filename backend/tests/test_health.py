"""Tests for health score tables and categories."""
import pytest
from datetime import datetime, timezone
from pathlib import Path

from models import Reading
from analytics.health import (
    HealthScoreConfig,
    SteppedTable,
    aqi_category,
    compute_health_score,
    health_score_for,
    score_category,
)
from config import ScoringConfig


def test_clean_air_scores_100():
    """Test readings below every guideline deduct nothing."""
    assert compute_health_score(pm25=3, pm10=10, humidity=45, noise=35) == 100


def test_missing_values_deduct_nothing():
    """Test absent metrics are ignored."""
    assert compute_health_score() == 100


@pytest.mark.parametrize("pm25,expected", [
    (5, 100), (5.1, 95), (12, 95), (20, 85), (35, 85), (50, 70), (55, 70), (56, 50), (500, 50),
])
def test_pm25_breakpoints(pm25, expected):
    """Test the PM2.5 stepped table."""
    assert compute_health_score(pm25=pm25) == expected


@pytest.mark.parametrize("pm10,expected", [
    (15, 100), (40, 95), (100, 85), (200, 75), (300, 60),
])
def test_pm10_breakpoints(pm10, expected):
    """Test the PM10 stepped table."""
    assert compute_health_score(pm10=pm10) == expected


@pytest.mark.parametrize("humidity,expected", [
    (10, 90), (25, 95), (50, 100), (75, 95), (90, 90),
])
def test_humidity_bands(humidity, expected):
    """Test humidity deducts 10 outside 20-80 and 5 outside 30-70."""
    assert compute_health_score(humidity=humidity) == expected


@pytest.mark.parametrize("noise,expected", [
    (40, 100), (50, 97), (65, 93), (90, 85),
])
def test_noise_breakpoints(noise, expected):
    """Test the noise stepped table."""
    assert compute_health_score(noise=noise) == expected


def test_score_clamped_to_zero():
    """Test combined deductions never go below 0."""
    config = HealthScoreConfig.model_validate({
        "pm25": {"bands": [{"upper_bound": None, "deduction": 80}]},
        "pm10": {"bands": [{"upper_bound": None, "deduction": 80}]},
    })
    assert compute_health_score(pm25=1, pm10=1, config=config) == 0


def test_monotonic_in_pm25():
    """Test the score never rises as PM2.5 rises with other inputs fixed."""
    scores = [
        compute_health_score(pm25=value / 2, pm10=40, humidity=65, noise=50)
        for value in range(0, 400)
    ]
    assert all(a >= b for a, b in zip(scores, scores[1:]))


def test_health_score_for_reading():
    """Test scoring a reading uses its values."""
    reading = Reading(
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        entry_id=1,
        pm25=20,
        humidity=75
    )
    assert health_score_for(reading) == 80
    assert health_score_for(None) == 100


def test_table_requires_open_last_band():
    """Test a table must end with an open band."""
    with pytest.raises(ValueError):
        SteppedTable.model_validate({"bands": [{"upper_bound": 5, "deduction": 0}]})


def test_table_requires_ascending_bounds():
    """Test band bounds must ascend."""
    with pytest.raises(ValueError):
        SteppedTable.model_validate({"bands": [
            {"upper_bound": 10, "deduction": 0},
            {"upper_bound": 5, "deduction": 5},
            {"upper_bound": None, "deduction": 10},
        ]})


@pytest.mark.parametrize("score,expected", [
    (100, "Excellent"), (80, "Excellent"), (79, "Good"), (60, "Good"),
    (59, "Moderate"), (40, "Moderate"), (20, "Poor"), (19, "Hazardous"), (0, "Hazardous"),
])
def test_score_category(score, expected):
    """Test score category thresholds."""
    assert score_category(score) == expected


@pytest.mark.parametrize("pm25,expected", [
    (None, "Unknown"), (12, "Good"), (30, "Moderate"),
    (50, "Unhealthy for Sensitive Groups"), (100, "Unhealthy"), (200, "Hazardous"),
])
def test_aqi_category(pm25, expected):
    """Test AQI categories from PM2.5."""
    assert aqi_category(pm25) == expected


def test_scoring_config_defaults_without_file(tmp_path):
    """Test missing scoring.yaml falls back to defaults."""
    config = ScoringConfig(tmp_path).health_score_config()
    assert config == HealthScoreConfig()


def test_scoring_config_from_yaml(tmp_path):
    """Test breakpoints can be overridden from YAML."""
    (tmp_path / "scoring.yaml").write_text(
        "health_score:\n"
        "  noise:\n"
        "    bands:\n"
        "      - {upper_bound: 30, deduction: 0}\n"
        "      - {upper_bound: null, deduction: 20}\n"
    )
    config = ScoringConfig(tmp_path).health_score_config()

    assert compute_health_score(noise=35, config=config) == 80
    assert compute_health_score(pm25=20, config=config) == 85


def test_shipped_scoring_yaml_matches_defaults():
    """Test the repository scoring.yaml reproduces the built-in tables."""
    config_dir = Path(__file__).resolve().parents[2] / "config"
    assert ScoringConfig(config_dir).health_score_config() == HealthScoreConfig()
