"""Data models for canonical sensor readings, metrics and AI insights."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Literal, List
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
)


# Canonical numeric fields of a Reading, in reporting order
METRIC_FIELDS = (
    "pm25", "pm10", "temperature", "humidity", "noise",
    "co2", "o3", "no2", "so2", "co",
)

METRIC_UNITS = {
    "pm25": "µg/m³",
    "pm10": "µg/m³",
    "temperature": "°C",
    "humidity": "%",
    "noise": "dB",
    "co2": "ppm",
    "o3": "µg/m³",
    "no2": "µg/m³",
    "so2": "µg/m³",
    "co": "µg/m³",
}

METRIC_LABELS = {
    "pm25": "PM2.5",
    "pm10": "PM10",
    "temperature": "Temperature",
    "humidity": "Humidity",
    "noise": "Noise",
    "co2": "CO2",
    "o3": "O3",
    "no2": "NO2",
    "so2": "SO2",
    "co": "CO",
}

Trend = Literal["increasing", "decreasing", "stable"]
InsightTrend = Literal["improving", "stable", "deteriorating"]
ScoreCategory = Literal["Excellent", "Good", "Moderate", "Poor", "Hazardous"]


class SourceKind(str, Enum):
    """Where a reading sequence came from."""
    THINGSPEAK = "thingspeak"
    OPENAQ = "openaq"
    SPREADSHEET = "spreadsheet"
    MANUAL = "manual"


class Reading(BaseModel):
    """One timestamped sample in the canonical schema."""
    timestamp: datetime
    entry_id: int = Field(ge=1, validation_alias=AliasChoices("entry_id", "entryId"))
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    noise: Optional[float] = None
    co2: Optional[float] = None
    o3: Optional[float] = None
    no2: Optional[float] = None
    so2: Optional[float] = None
    co: Optional[float] = None

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def metric(self, name: str) -> Optional[float]:
        """Value of a canonical metric, None when absent."""
        return getattr(self, name)

    def has_data(self) -> bool:
        return any(getattr(self, name) is not None for name in METRIC_FIELDS)


class FieldMatch(BaseModel):
    """Source field chosen for one canonical slot."""
    model_config = ConfigDict(frozen=True)

    field: str
    confident: bool = True


class FieldMapping(BaseModel):
    """Canonical metric name -> source field, built once per ingestion."""
    model_config = ConfigDict(frozen=True)

    fields: Dict[str, FieldMatch] = Field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        match = self.fields.get(name)
        return match.field if match else None

    def is_confident(self, name: str) -> bool:
        match = self.fields.get(name)
        return bool(match and match.confident)

    def guessed(self) -> List[str]:
        """Canonical slots filled by positional guessing."""
        return [name for name, match in self.fields.items() if not match.confident]

    def as_dict(self) -> Dict[str, str]:
        return {name: match.field for name, match in self.fields.items()}

    def __contains__(self, name: str) -> bool:
        return name in self.fields


class MetricSummary(BaseModel):
    """Derived statistics for one pollutant."""
    current: float = 0.0
    mean: float = 0.0
    min: float = 0.0
    max: float = 0.0
    trend: Trend = "stable"
    count: int = 0
    unit: str = ""


class MetricsReport(BaseModel):
    """Metrics Engine output for one reading sequence."""
    summaries: Dict[str, MetricSummary]
    health_score: int = Field(ge=0, le=100)
    aqi_category: str
    latest: Optional[Reading] = None


class AnalysisContext(BaseModel):
    """Natural-language context handed to the AI providers."""
    source: str
    sample_count: int = Field(ge=0)


class Finding(BaseModel):
    """A single observation in an insight."""
    type: Literal["good", "warning"]
    text: str = Field(..., min_length=1)
    icon: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return "good" if value in ("good", "positive", "ok", "success") else "warning"


class Recommendation(BaseModel):
    """Suggested action with a priority and expected impact."""
    action: str = Field(..., min_length=1)
    priority: Literal["high", "medium", "low"] = "medium"
    impact: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in ("high", "medium", "low") else "medium"


class QuickAction(BaseModel):
    label: str
    duration: str = ""
    benefit: str = ""


class Insight(BaseModel):
    """Structured quality assessment, produced by a provider or the local analyzer."""
    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(..., min_length=1)
    score: int = Field(
        ..., ge=0, le=100,
        validation_alias=AliasChoices("score", "airQualityScore")
    )
    category: ScoreCategory = Field(
        ..., validation_alias=AliasChoices("category", "scoreCategory")
    )
    findings: List[Finding] = Field(
        ..., validation_alias=AliasChoices("findings", "insights")
    )
    recommendations: List[Recommendation] = Field(default_factory=list)
    trend: InsightTrend = "stable"
    provider_used: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("provider_used", "providerUsed"),
        serialization_alias="providerUsed"
    )
    health_impact: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("health_impact", "healthImpact"),
        serialization_alias="healthImpact"
    )
    quick_actions: List[QuickAction] = Field(
        default_factory=list,
        validation_alias=AliasChoices("quick_actions", "quickActions"),
        serialization_alias="quickActions"
    )

    @field_validator("score", mode="before")
    @classmethod
    def round_score(cls, v: Any) -> Any:
        if isinstance(v, float):
            return int(round(v))
        return v

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    @field_validator("trend", mode="before")
    @classmethod
    def normalize_trend(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        if value in ("deteriorating", "worsening", "increasing"):
            return "deteriorating"
        if value in ("improving", "decreasing"):
            return "improving"
        return "stable"


class AttemptOutcome(str, Enum):
    """Result of one provider call."""
    SUCCESS = "success"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT_ERROR = "transient_error"
    INVALID_RESPONSE = "invalid_response"


class ProviderAttempt(BaseModel):
    """Bookkeeping for one (provider, credential, model) call."""
    provider: str
    credential_index: int
    model: str
    outcome: AttemptOutcome
    detail: Optional[str] = None
    skipped: bool = False


class Credential(BaseModel):
    """API key for one provider."""
    provider: str
    api_key: SecretStr
    label: Optional[str] = None

    @field_validator("api_key")
    @classmethod
    def key_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("API key cannot be empty")
        return v


class Candidate(BaseModel):
    """One entry of the orchestrator's ordered call chain."""
    provider: str
    credential_index: int = Field(ge=1)
    credential: Credential
    model: str

    @property
    def tag(self) -> str:
        return f"{self.provider}:key{self.credential_index}:{self.model}"


class SourceDataset(BaseModel):
    """Normalized readings plus provenance for one ingestion."""
    source: SourceKind
    details: Dict[str, Any] = Field(default_factory=dict)
    mapping: FieldMapping = Field(default_factory=FieldMapping)
    readings: List[Reading]
    meta: Dict[str, Any] = Field(default_factory=dict)
