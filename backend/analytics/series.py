"""Time-series helpers over canonical readings."""
from typing import Dict, List, Literal, Sequence, Any
import numpy as np
import pandas as pd

from models import METRIC_FIELDS, Reading


def readings_frame(readings: Sequence[Reading]) -> pd.DataFrame:
    """
    Convert readings to a DataFrame indexed by entry_id.

    Args:
        readings: Canonical readings

    Returns:
        DataFrame with a timestamp column and one float column per metric
    """
    columns = ["entry_id", "timestamp", *METRIC_FIELDS]
    if not readings:
        return pd.DataFrame(columns=columns).set_index("entry_id")

    df = pd.DataFrame([r.model_dump() for r in readings], columns=columns)
    df[list(METRIC_FIELDS)] = df[list(METRIC_FIELDS)].astype(float)
    return df.set_index("entry_id")


def _frame_to_readings(df: pd.DataFrame) -> List[Reading]:
    readings = []
    for entry_id, row in df.iterrows():
        values = {
            metric: (None if pd.isna(row[metric]) else float(row[metric]))
            for metric in METRIC_FIELDS
        }
        ts = row["timestamp"]
        if isinstance(ts, pd.Timestamp):
            ts = ts.to_pydatetime()
        readings.append(Reading(
            timestamp=ts,
            entry_id=int(entry_id),
            **values
        ))
    return readings


def clean_time_series(
    readings: Sequence[Reading],
    method: Literal["linear", "forward_fill", "drop"] = "linear"
) -> List[Reading]:
    """
    Fill or remove gaps in reported metrics.

    Only metrics that appear at least once are touched; metrics the source
    never reports stay None.

    Args:
        readings: Canonical readings
        method: "linear" interpolates (edges take the nearest value),
            "forward_fill" carries the previous value, "drop" removes rows
            with any missing reported metric

    Returns:
        New list of readings
    """
    if not readings:
        return []

    df = readings_frame(readings)
    reported = [m for m in METRIC_FIELDS if df[m].notna().any()]

    if method == "drop":
        df = df.dropna(subset=reported)
    elif method == "forward_fill":
        df[reported] = df[reported].ffill()
    elif method == "linear":
        df[reported] = (
            df[reported]
            .interpolate(method="linear", limit_direction="both")
        )
    else:
        raise ValueError(f"Unknown cleaning method: {method}")

    return _frame_to_readings(df)


def detect_peaks(
    readings: Sequence[Reading],
    metric: str = "pm25",
    std_factor: float = 1.5
) -> List[Dict[str, Any]]:
    """
    Find readings far above the series mean.

    A peak is a value greater than mean + std_factor * std (population std).

    Args:
        readings: Canonical readings
        metric: Metric to scan
        std_factor: Number of standard deviations above the mean

    Returns:
        Peaks sorted by value, highest first
    """
    points = [
        (r, r.metric(metric)) for r in readings if r.metric(metric) is not None
    ]
    if len(points) < 2:
        return []

    values = np.array([v for _, v in points], dtype=float)
    cutoff = values.mean() + std_factor * values.std()

    peaks = [
        {"entry_id": r.entry_id, "timestamp": r.timestamp, "metric": metric, "value": v}
        for r, v in points if v > cutoff
    ]
    return sorted(peaks, key=lambda p: p["value"], reverse=True)


def describe_metrics(readings: Sequence[Reading]) -> Dict[str, Dict[str, float]]:
    """Mean, median, min, max, std and count for each reported metric."""
    df = readings_frame(readings)
    result = {}

    for metric in METRIC_FIELDS:
        series = df[metric].dropna()
        if series.empty:
            continue

        result[metric] = {
            "mean": float(series.mean()),
            "median": float(series.median()),
            "min": float(series.min()),
            "max": float(series.max()),
            "std": float(series.std(ddof=0)),
            "count": int(series.count())
        }

    return result
