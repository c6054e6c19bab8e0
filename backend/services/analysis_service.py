"""Service for metrics and AI insight generation over readings."""
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from models import AnalysisContext, MetricsReport, Reading, SourceKind
from analytics.health import DEFAULT_HEALTH_CONFIG, HealthScoreConfig
from analytics.metrics import compute_metrics
from analytics.series import clean_time_series, describe_metrics, detect_peaks
from llm.orchestrator import InsightOrchestrator
from llm.providers import build_provider
from exceptions import EmptySourceError
from logging_config import get_logger


class AnalysisService:
    """Service for turning readings into metrics and an insight."""

    def __init__(
        self,
        orchestrator: InsightOrchestrator,
        scoring: HealthScoreConfig = DEFAULT_HEALTH_CONFIG
    ):
        """
        Initialize analysis service.

        Args:
            orchestrator: Configured insight orchestrator
            scoring: Health score breakpoints
        """
        self.orchestrator = orchestrator
        self.scoring = scoring
        self.logger = get_logger("services.analysis")

    @classmethod
    def from_settings(cls, settings, scoring: Optional[HealthScoreConfig] = None) -> "AnalysisService":
        """
        Build the orchestrator from configured providers and credentials.

        The secondary provider is only wired in when it has a key.
        """
        logger = get_logger("services.analysis")

        primary_name = settings.primary_provider
        primary = build_provider(primary_name, settings)
        credentials = settings.credentials(primary_name)
        if not credentials:
            logger.warning(f"No {primary_name} API keys configured")

        secondary = None
        secondary_credential = None
        secondary_model = None
        secondary_name = settings.secondary_provider
        if secondary_name and secondary_name != primary_name:
            secondary_credentials = settings.credentials(secondary_name)
            if secondary_credentials:
                secondary = build_provider(secondary_name, settings)
                secondary_credential = secondary_credentials[0]
                secondary_model = settings.models_for(secondary_name)[0]
            else:
                logger.warning(f"Secondary provider {secondary_name} has no API key, skipping")

        orchestrator = InsightOrchestrator(
            primary=primary,
            credentials=credentials,
            models=settings.models_for(primary_name),
            secondary=secondary,
            secondary_credential=secondary_credential,
            secondary_model=secondary_model,
            timeout=settings.ai_timeout_seconds
        )
        return cls(orchestrator, scoring or DEFAULT_HEALTH_CONFIG)

    def metrics(self, readings: Sequence[Reading]) -> MetricsReport:
        """Metrics report for readings in timestamp order."""
        ordered = sorted(readings, key=lambda r: (r.timestamp, r.entry_id))
        return compute_metrics(ordered, self.scoring)

    def series_report(
        self,
        readings: Sequence[Reading],
        clean: Optional[Literal["linear", "forward_fill", "drop"]] = None
    ) -> Dict[str, Any]:
        """
        Metrics plus descriptive statistics and PM2.5 peaks.

        Args:
            readings: Canonical readings
            clean: Optional gap handling applied before anything is computed

        Returns:
            Dictionary with the metrics report, per-metric statistics, peaks
            and the readings the numbers were computed from
        """
        ordered = sorted(readings, key=lambda r: (r.timestamp, r.entry_id))
        if clean:
            ordered = clean_time_series(ordered, method=clean)
            self.logger.info(f"Cleaned {len(readings)} readings with {clean}, {len(ordered)} remain")

        return {
            "report": compute_metrics(ordered, self.scoring),
            "statistics": describe_metrics(ordered),
            "peaks": detect_peaks(ordered),
            "readings": ordered,
        }

    async def analyze(
        self,
        readings: Sequence[Reading],
        source: Union[SourceKind, str]
    ) -> Dict[str, Any]:
        """
        Compute metrics and generate an insight.

        Args:
            readings: Canonical readings
            source: Source the readings came from

        Returns:
            Dictionary with metrics, healthScore, aqiCategory, insight,
            sampleCount and the provider attempts made

        Raises:
            EmptySourceError: If there are no readings to analyze
        """
        source_name = source.value if isinstance(source, SourceKind) else str(source)

        if not readings:
            raise EmptySourceError(
                "No readings to analyze",
                details={"source": source_name}
            )

        self.logger.info(f"Analyzing {len(readings)} readings from {source_name}")

        report = self.metrics(readings)
        context = AnalysisContext(source=source_name, sample_count=len(readings))
        result = await self.orchestrator.run(report.summaries, report.health_score, context)

        self.logger.info(
            f"Insight from {result.insight.provider_used} after {len(result.attempts)} attempts"
        )

        attempts: List[Dict[str, Any]] = [a.model_dump(mode="json") for a in result.attempts]
        return {
            "metrics": {
                name: summary.model_dump()
                for name, summary in report.summaries.items()
            },
            "healthScore": report.health_score,
            "aqiCategory": report.aqi_category,
            "insight": result.insight.model_dump(by_alias=True),
            "sampleCount": len(readings),
            "attempts": attempts,
        }
