"""Prompt construction for insight providers."""
from typing import Dict

from models import METRIC_FIELDS, METRIC_LABELS, AnalysisContext, MetricSummary

RESPONSE_SCHEMA = """{
  "summary": "Brief 2-3 sentence summary of overall air quality",
  "airQualityScore": 85,
  "scoreCategory": "Good",
  "insights": [
    {"type": "good", "icon": "wind", "text": "Positive finding"},
    {"type": "warning", "icon": "alert", "text": "Area of concern"}
  ],
  "recommendations": [
    {"action": "Specific actionable recommendation", "priority": "high", "impact": "Reduces PM2.5 by 30%"}
  ],
  "healthImpact": "1-2 sentence health impact assessment",
  "trend": "improving",
  "quickActions": [
    {"label": "Run Air Purifier", "duration": "2 hours", "benefit": "Reduce PM2.5"}
  ]
}"""


def _format_summary(metric: str, summary: MetricSummary) -> str:
    unit = summary.unit
    return (
        f"- {METRIC_LABELS.get(metric, metric)}: Current {summary.current:.1f} {unit}, "
        f"Average {summary.mean:.1f} {unit} "
        f"(Min: {summary.min:.1f}, Max: {summary.max:.1f}, Trend: {summary.trend})"
    )


def build_insight_prompt(
    summaries: Dict[str, MetricSummary],
    context: AnalysisContext,
    health_score: int
) -> str:
    """
    Build the analysis prompt sent to every provider.

    Metrics without samples are reported as N/A so the model does not invent
    values for pollutants the source never measured.

    Args:
        summaries: Per-metric summaries from the metrics engine
        context: Source name and sample count
        health_score: Locally computed score, given as a reference point

    Returns:
        Prompt text requesting a JSON object
    """
    lines = []
    for metric in METRIC_FIELDS:
        summary = summaries.get(metric)
        if summary is None or summary.count == 0:
            lines.append(f"- {METRIC_LABELS.get(metric, metric)}: N/A")
        else:
            lines.append(_format_summary(metric, summary))
    metrics_block = "\n".join(lines)

    return f"""You are an expert air quality analyst. Analyze the following indoor air quality data and provide actionable insights:

**Data Summary:**
- Source: {context.source}
- Time Period: {context.sample_count} readings
- Reference Health Score: {health_score}/100
{metrics_block}

Please provide a JSON response with this exact structure:
{RESPONSE_SCHEMA}

Respond with the JSON object only.
The trend must be one of: improving, stable, or deteriorating.
The airQualityScore must be 0-100 (0=hazardous, 100=excellent).
The scoreCategory must be: Excellent, Good, Moderate, Poor, or Hazardous.
"""
