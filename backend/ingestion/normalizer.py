"""Normalize raw source rows into canonical readings."""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
import pandas as pd

from models import METRIC_FIELDS, FieldMapping, Reading, SourceKind
from exceptions import EmptySourceError
from logging_config import get_logger

logger = get_logger("ingestion.normalizer")

DEFAULT_SAMPLE_INTERVAL = timedelta(seconds=60)


def coerce_float(value: Any) -> Optional[float]:
    """
    Convert a raw field value to float.

    Returns None for missing, empty, non-numeric, NaN or infinite values.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    try:
        number = float(value)
    except (TypeError, ValueError):
        return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a raw timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-like strings and Unix epoch seconds, including
    epochs read from text cells.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        epoch = coerce_float(value)
        if epoch is not None:
            value = epoch

    try:
        if isinstance(value, (int, float)):
            if math.isnan(value):
                return None
            ts = pd.to_datetime(value, unit="s", utc=True)
        else:
            ts = pd.to_datetime(value, utc=True)
    except (TypeError, ValueError, OverflowError):
        return None

    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _lookup(row: Dict[str, Any], slot: str, mapping: FieldMapping) -> Any:
    """Canonical key on the row wins over the mapped source field."""
    if slot in row:
        return row[slot]

    field = mapping.get(slot)
    if field is None:
        return None
    return row.get(field)


def _resolve_timestamps(
    parsed: List[Optional[datetime]],
    now: datetime,
    interval: timedelta
) -> List[datetime]:
    """Fill missing timestamps so every row has an ordering key."""
    n = len(parsed)
    known = [i for i, ts in enumerate(parsed) if ts is not None]

    if not known:
        # Extrapolate backward from now at the implicit sampling interval
        return [now - (n - i) * interval for i in range(n)]

    resolved: List[Optional[datetime]] = list(parsed)
    first = known[0]
    for i in range(first):
        resolved[i] = parsed[first] - (first - i) * interval

    for i in range(first + 1, n):
        if resolved[i] is None:
            resolved[i] = resolved[i - 1] + interval

    return resolved


def normalize_rows(
    rows: Sequence[Dict[str, Any]],
    mapping: FieldMapping,
    source: Union[SourceKind, str],
    now: Optional[datetime] = None,
    sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL
) -> List[Reading]:
    """
    Convert raw rows into an ordered list of canonical readings.

    Rows are never dropped: malformed numeric values become None. Rows are
    ordered by timestamp (stable for ties) and numbered from 1.

    Args:
        rows: Flat key-value records from a source
        mapping: Canonical metric -> source field
        source: Source kind, used for logging
        now: Reference time for synthesized timestamps (defaults to UTC now)
        sample_interval: Spacing of synthesized timestamps

    Returns:
        Readings, one per input row

    Raises:
        EmptySourceError: If there are no rows
    """
    source_name = source.value if isinstance(source, SourceKind) else str(source)

    if not rows:
        raise EmptySourceError(
            f"No rows to normalize from {source_name}",
            details={"source": source_name}
        )

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    parsed = [parse_timestamp(_lookup(row, "timestamp", mapping)) for row in rows]
    if any(ts is None for ts in parsed):
        logger.debug(
            f"{sum(ts is None for ts in parsed)} of {len(rows)} {source_name} rows "
            f"have no usable timestamp, synthesizing"
        )
    timestamps = _resolve_timestamps(parsed, now, sample_interval)

    order = sorted(range(len(rows)), key=lambda i: timestamps[i])

    readings = []
    for position, i in enumerate(order, start=1):
        row = rows[i]
        values = {
            metric: coerce_float(_lookup(row, metric, mapping))
            for metric in METRIC_FIELDS
        }
        readings.append(Reading(timestamp=timestamps[i], entry_id=position, **values))

    logger.info(f"Normalized {len(readings)} {source_name} rows")
    return readings


def drop_empty_readings(readings: Sequence[Reading]) -> List[Reading]:
    """
    Remove readings with no metric values and renumber the rest.

    Not applied by normalize_rows; callers opt in and report the drop count.
    """
    kept = [r for r in readings if r.has_data()]
    return [
        r.model_copy(update={"entry_id": position})
        for position, r in enumerate(kept, start=1)
    ]
