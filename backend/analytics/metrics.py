"""Metrics engine: per-pollutant summaries, trends and health score."""
from typing import Dict, List, Sequence, Optional
import numpy as np
from scipy import stats

from models import (
    METRIC_FIELDS,
    METRIC_UNITS,
    MetricSummary,
    MetricsReport,
    Reading,
)
from analytics.health import (
    DEFAULT_HEALTH_CONFIG,
    HealthScoreConfig,
    aqi_category,
    health_score_for,
)

TREND_THRESHOLD_RATIO = 0.05
MIN_TREND_POINTS = 3


def metric_values(readings: Sequence[Reading], metric: str) -> List[float]:
    """Non-null values of one metric, in reading order."""
    return [
        value for value in (r.metric(metric) for r in readings)
        if value is not None and not np.isnan(value)
    ]


def detect_trend(
    values: Sequence[float],
    threshold_ratio: float = TREND_THRESHOLD_RATIO
) -> str:
    """
    Classify a series as increasing, decreasing or stable.

    Fits an ordinary least-squares line against the sample index and compares
    the slope with a threshold of 5% of the series mean.

    Args:
        values: Non-null samples in order
        threshold_ratio: Fraction of the mean the slope must exceed

    Returns:
        "increasing", "decreasing" or "stable"
    """
    if len(values) < MIN_TREND_POINTS:
        return "stable"

    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    slope = stats.linregress(x, y).slope
    threshold = abs(float(np.mean(y))) * threshold_ratio

    if slope > threshold:
        return "increasing"
    if slope < -threshold:
        return "decreasing"
    return "stable"


def summarize_metric(readings: Sequence[Reading], metric: str) -> MetricSummary:
    """
    Summarize one metric over a reading sequence.

    Args:
        readings: Canonical readings
        metric: Canonical metric name

    Returns:
        MetricSummary; all statistics are 0 when no value is present
    """
    values = metric_values(readings, metric)
    unit = METRIC_UNITS.get(metric, "")

    if not values:
        return MetricSummary(unit=unit)

    arr = np.asarray(values, dtype=float)
    low, high = float(arr.min()), float(arr.max())
    # float summation can land a hair outside the observed range
    mean = min(max(float(arr.mean()), low), high)

    return MetricSummary(
        current=float(arr[-1]),
        mean=mean,
        min=low,
        max=high,
        trend=detect_trend(values),
        count=len(values),
        unit=unit
    )


def summarize_readings(readings: Sequence[Reading]) -> Dict[str, MetricSummary]:
    """Summaries for every canonical metric."""
    return {metric: summarize_metric(readings, metric) for metric in METRIC_FIELDS}


def latest_reading(readings: Sequence[Reading]) -> Optional[Reading]:
    return readings[-1] if readings else None


def compute_metrics(
    readings: Sequence[Reading],
    config: HealthScoreConfig = DEFAULT_HEALTH_CONFIG
) -> MetricsReport:
    """
    Run the full metrics engine.

    Args:
        readings: Canonical readings (may be empty)
        config: Health score breakpoints

    Returns:
        MetricsReport with summaries, health score and AQI category
    """
    latest = latest_reading(readings)
    summaries = summarize_readings(readings)
    pm25 = summaries["pm25"]

    return MetricsReport(
        summaries=summaries,
        health_score=health_score_for(latest, config),
        aqi_category=aqi_category(pm25.current if pm25.count else None),
        latest=latest
    )
