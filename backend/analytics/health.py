"""Composite health score and category tables."""
from typing import List, Optional, Union
from pydantic import BaseModel, Field, model_validator

from models import Reading


class Band(BaseModel):
    """Deduction applied while value <= upper_bound (None catches the rest)."""
    upper_bound: Optional[float] = None
    deduction: int = Field(ge=0)


class ComfortBand(BaseModel):
    """Deduction applied when a value falls outside [low, high]."""
    low: float
    high: float
    deduction: int = Field(ge=0)


class SteppedTable(BaseModel):
    """Ordered severity bands, first matching band wins."""
    bands: List[Band]

    @model_validator(mode="after")
    def check_order(self) -> "SteppedTable":
        bounds = [b.upper_bound for b in self.bands if b.upper_bound is not None]
        if bounds != sorted(bounds):
            raise ValueError("Band upper bounds must be ascending")
        if not self.bands or self.bands[-1].upper_bound is not None:
            raise ValueError("Last band must be open-ended (upper_bound: null)")
        return self

    def deduction(self, value: float) -> int:
        for band in self.bands:
            if band.upper_bound is None or value <= band.upper_bound:
                return band.deduction
        return 0


def _table(*pairs) -> SteppedTable:
    return SteppedTable(bands=[Band(upper_bound=u, deduction=d) for u, d in pairs])


class HealthScoreConfig(BaseModel):
    """
    Breakpoints for the weighted deduction score.

    Defaults reproduce the WHO-derived tables used by existing consumers:
    PM2.5 guideline 5 µg/m³, PM10 guideline 15 µg/m³, humidity comfort
    30-60% and noise comfort below 40 dB.
    """
    pm25: SteppedTable = Field(default_factory=lambda: _table(
        (5, 0), (12, 5), (35, 15), (55, 30), (None, 50)
    ))
    pm10: SteppedTable = Field(default_factory=lambda: _table(
        (15, 0), (50, 5), (150, 15), (250, 25), (None, 40)
    ))
    humidity: List[ComfortBand] = Field(default_factory=lambda: [
        ComfortBand(low=20, high=80, deduction=10),
        ComfortBand(low=30, high=70, deduction=5),
    ])
    noise: SteppedTable = Field(default_factory=lambda: _table(
        (40, 0), (55, 3), (70, 7), (None, 15)
    ))


DEFAULT_HEALTH_CONFIG = HealthScoreConfig()


def compute_health_score(
    pm25: Optional[float] = None,
    pm10: Optional[float] = None,
    humidity: Optional[float] = None,
    noise: Optional[float] = None,
    config: HealthScoreConfig = DEFAULT_HEALTH_CONFIG
) -> int:
    """
    Compute the 0-100 air health score.

    Starts at 100 and deducts per pollutant from the stepped tables. Absent
    values deduct nothing. Higher pollution never raises the score.

    Args:
        pm25: PM2.5 in µg/m³
        pm10: PM10 in µg/m³
        humidity: Relative humidity (%)
        noise: Noise level in dB
        config: Breakpoint tables

    Returns:
        Integer score clamped to [0, 100]
    """
    score = 100

    if pm25 is not None:
        score -= config.pm25.deduction(pm25)

    if pm10 is not None:
        score -= config.pm10.deduction(pm10)

    if humidity is not None:
        for band in config.humidity:
            if humidity < band.low or humidity > band.high:
                score -= band.deduction
                break

    if noise is not None:
        score -= config.noise.deduction(noise)

    return max(0, min(100, int(round(score))))


def health_score_for(
    reading: Optional[Reading],
    config: HealthScoreConfig = DEFAULT_HEALTH_CONFIG
) -> int:
    """Health score of a single reading (100 when there is none)."""
    if reading is None:
        return 100
    return compute_health_score(
        reading.pm25, reading.pm10, reading.humidity, reading.noise, config
    )


def score_category(score: Union[int, float]) -> str:
    """Map a 0-100 score onto the insight category scale."""
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Moderate"
    if score >= 20:
        return "Poor"
    return "Hazardous"


def aqi_category(pm25: Optional[float]) -> str:
    """Air quality category from a PM2.5 concentration."""
    if pm25 is None:
        return "Unknown"
    if pm25 <= 12:
        return "Good"
    if pm25 <= 35:
        return "Moderate"
    if pm25 <= 55:
        return "Unhealthy for Sensitive Groups"
    if pm25 <= 150:
        return "Unhealthy"
    return "Hazardous"
