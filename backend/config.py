"""Configuration management using Pydantic settings."""
import json
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode
import yaml

from analytics.health import HealthScoreConfig
from models import Credential


def _split_list(value: Any) -> Any:
    """Accept a JSON list or a comma-separated string."""
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",")]
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # AI providers
    gemini_api_keys: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="GEMINI_API_KEYS"
    )
    gemini_models: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "gemini-1.5-flash",
            "gemini-2.0-flash-exp",
            "gemini-1.5-pro",
        ],
        alias="GEMINI_MODELS"
    )
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile")
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022")
    primary_provider: str = Field(default="gemini")
    secondary_provider: Optional[str] = Field(default="groq")
    ai_timeout_seconds: float = Field(default=12.0, ge=1.0, le=60.0)

    # Data sources
    thingspeak_base_url: str = Field(default="https://api.thingspeak.com")
    openaq_base_url: str = Field(default="https://api.openaq.org/v2")
    openaq_api_key: str = Field(default="", alias="OPENAQ_API_KEY")
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    sample_interval_seconds: int = Field(default=60, gt=0)

    # Paths
    config_path: Path = Field(default=Path(__file__).resolve().parent.parent / "config")
    log_file: Optional[Path] = Field(default=None)

    # Application
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=True)
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True

    @field_validator("gemini_api_keys", "gemini_models", "cors_origins", mode="before")
    @classmethod
    def split_list(cls, v: Any) -> Any:
        return _split_list(v)

    @field_validator("gemini_api_keys")
    @classmethod
    def drop_blank_keys(cls, v: List[str]) -> List[str]:
        return [key.strip() for key in v if key and key.strip()]

    @field_validator("gemini_models")
    @classmethod
    def require_models(cls, v: List[str]) -> List[str]:
        models = [m.strip() for m in v if m and m.strip()]
        if not models:
            raise ValueError("At least one Gemini model must be configured")
        return models

    @field_validator("primary_provider", "secondary_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    def api_keys_for(self, provider: str) -> List[str]:
        """All configured keys for a provider, in declared order."""
        if provider == "gemini":
            return list(self.gemini_api_keys)
        if provider == "groq":
            return [self.groq_api_key] if self.groq_api_key.strip() else []
        if provider == "anthropic":
            return [self.anthropic_api_key] if self.anthropic_api_key.strip() else []
        return []

    def models_for(self, provider: str) -> List[str]:
        if provider == "gemini":
            return list(self.gemini_models)
        if provider == "groq":
            return [self.groq_model]
        if provider == "anthropic":
            return [self.anthropic_model]
        return []

    def credentials(self, provider: str) -> List[Credential]:
        """Explicit credential list handed to the orchestrator."""
        return [
            Credential(provider=provider, api_key=key, label=f"{provider}-{idx}")
            for idx, key in enumerate(self.api_keys_for(provider), start=1)
        ]


class ScoringConfig:
    """Health score breakpoints loaded from YAML."""

    def __init__(self, config_path: Path):
        self.config_path = config_path / "scoring.yaml"
        self._raw = self._load_scoring()

    def _load_scoring(self) -> Dict:
        """Load breakpoint overrides from YAML."""
        if not self.config_path.exists():
            return {}

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def health_score_config(self) -> HealthScoreConfig:
        """Breakpoint tables, defaults where the file is silent."""
        return HealthScoreConfig.model_validate(self._raw.get("health_score", {}))


# Global settings instance
settings = Settings()
scoring_config = ScoringConfig(settings.config_path)
