"""Rule-based insight used when every AI provider fails."""
from typing import Dict, List, Optional

from models import (
    AnalysisContext,
    Finding,
    Insight,
    MetricSummary,
    QuickAction,
    Recommendation,
)
from analytics.health import score_category

LOCAL_FALLBACK = "local-fallback"

PM25_GOOD = 12.0
PM25_MODERATE = 35.0
HUMIDITY_RANGE = (30.0, 60.0)
TEMPERATURE_RANGE = (20.0, 26.0)

HEALTH_IMPACT = {
    "excellent": "Current air quality poses minimal health risk. Safe for all individuals including sensitive groups.",
    "moderate": "Moderate air quality may affect sensitive individuals. Most people can continue normal activities.",
    "poor": "Air quality may cause health effects. Sensitive groups should limit prolonged exposure.",
}

DEFAULT_RECOMMENDATIONS = [
    Recommendation(
        action="Maintain current ventilation practices",
        priority="low",
        impact="Sustain good air quality"
    ),
    Recommendation(
        action="Continue monitoring air quality regularly",
        priority="low",
        impact="Early detection of issues"
    ),
]


def _current(summaries: Dict[str, MetricSummary], metric: str) -> Optional[float]:
    summary = summaries.get(metric)
    if summary is None or summary.count == 0:
        return None
    return summary.current


def _insight_trend(summaries: Dict[str, MetricSummary]) -> str:
    # Rising particulate load means worsening air
    summary = summaries.get("pm25")
    if summary is None or summary.count == 0:
        return "stable"
    return {
        "increasing": "deteriorating",
        "decreasing": "improving",
    }.get(summary.trend, "stable")


def analyze_locally(
    summaries: Dict[str, MetricSummary],
    health_score: int,
    context: AnalysisContext
) -> Insight:
    """
    Build an insight from fixed thresholds on the latest metric values.

    Metrics the source never reported produce no finding. Score and category
    come from the health score so they agree with the metrics report.

    Args:
        summaries: Per-metric summaries
        health_score: Health score of the latest reading
        context: Source name and sample count

    Returns:
        Insight with ``provider_used == "local-fallback"``
    """
    health_score = max(0, min(100, int(round(health_score))))
    findings: List[Finding] = []
    recommendations: List[Recommendation] = []
    quick_actions: List[QuickAction] = []

    pm25 = _current(summaries, "pm25")
    humidity = _current(summaries, "humidity")
    temperature = _current(summaries, "temperature")

    quality: Optional[str] = None
    if pm25 is not None:
        if pm25 <= PM25_GOOD:
            quality = "excellent"
            findings.append(Finding(
                type="good", icon="wind",
                text=f"PM2.5 levels ({pm25:.1f} µg/m³) are below WHO guidelines. Excellent air quality!"
            ))
            quick_actions.append(QuickAction(
                label="Maintain Current Settings", duration="Ongoing",
                benefit="Keep air quality optimal"
            ))
        elif pm25 <= PM25_MODERATE:
            quality = "moderate"
            findings.append(Finding(
                type="warning", icon="alert",
                text=f"PM2.5 levels ({pm25:.1f} µg/m³) are moderate. Monitor during peak hours."
            ))
            recommendations.append(Recommendation(
                action="Use air purifier during high pollution periods",
                priority="medium", impact="Reduce PM2.5 by 25-40%"
            ))
            quick_actions.append(QuickAction(
                label="Run Air Purifier", duration="2-3 hours",
                benefit="Reduce PM2.5 levels"
            ))
        else:
            quality = "poor"
            findings.append(Finding(
                type="warning", icon="alert",
                text=f"PM2.5 levels ({pm25:.1f} µg/m³) exceed safe limits. Immediate action needed."
            ))
            recommendations.append(Recommendation(
                action="Run air purifier continuously on high setting",
                priority="high", impact="Reduce PM2.5 by 50-70%"
            ))
            recommendations.append(Recommendation(
                action="Seal windows and limit outdoor air intake",
                priority="high", impact="Prevent outdoor pollution entry"
            ))
            quick_actions.append(QuickAction(
                label="High-Speed Purifier", duration="4+ hours",
                benefit="Fast PM2.5 reduction"
            ))

    if humidity is not None:
        low, high = HUMIDITY_RANGE
        if low <= humidity <= high:
            findings.append(Finding(
                type="good", icon="droplet",
                text=f"Humidity ({humidity:.1f}%) is in optimal range (30-60%)."
            ))
        elif humidity > high:
            findings.append(Finding(
                type="warning", icon="alert",
                text=f"Humidity ({humidity:.1f}%) is high - may promote mold growth."
            ))
            recommendations.append(Recommendation(
                action="Use dehumidifier to reduce moisture levels",
                priority="medium", impact="Prevent mold, improve comfort"
            ))
            quick_actions.append(QuickAction(
                label="Run Dehumidifier", duration="2 hours",
                benefit="Lower humidity to 50%"
            ))
        else:
            findings.append(Finding(
                type="warning", icon="alert",
                text=f"Humidity ({humidity:.1f}%) is low - may cause respiratory discomfort."
            ))
            recommendations.append(Recommendation(
                action="Use humidifier or place water containers",
                priority="low", impact="Improve comfort, reduce static"
            ))
            quick_actions.append(QuickAction(
                label="Add Humidity", duration="1 hour",
                benefit="Raise humidity to 40%"
            ))

    if temperature is not None:
        low, high = TEMPERATURE_RANGE
        if low <= temperature <= high:
            findings.append(Finding(
                type="good", icon="thermometer",
                text=f"Temperature ({temperature:.1f}°C) is comfortable and energy-efficient."
            ))
        elif temperature > high:
            findings.append(Finding(
                type="warning", icon="thermometer",
                text=f"Temperature ({temperature:.1f}°C) is above the comfortable range (20-26°C)."
            ))
            recommendations.append(Recommendation(
                action="Improve cooling or shade sun-facing windows",
                priority="low", impact="Restore thermal comfort"
            ))
            quick_actions.append(QuickAction(
                label="Adjust AC", duration="30 min", benefit="Cool to 24°C"
            ))
        else:
            findings.append(Finding(
                type="warning", icon="thermometer",
                text=f"Temperature ({temperature:.1f}°C) is below the comfortable range (20-26°C)."
            ))
            recommendations.append(Recommendation(
                action="Increase heating to reach 20-22°C",
                priority="low", impact="Restore thermal comfort"
            ))

    if not recommendations:
        recommendations = [r.model_copy() for r in DEFAULT_RECOMMENDATIONS]

    if quality is None:
        quality = {"Excellent": "excellent", "Good": "excellent", "Moderate": "moderate"}.get(
            score_category(health_score), "poor"
        )

    summary = (
        f"Based on {context.sample_count} readings from {context.source}, "
        f"your indoor air quality is {quality}. "
    )
    if quality == "excellent":
        summary += "All major pollutants are within safe limits."
    else:
        summary += "Some parameters require attention to ensure optimal health conditions."

    return Insight(
        summary=summary,
        score=health_score,
        category=score_category(health_score),
        findings=findings,
        recommendations=recommendations,
        trend=_insight_trend(summaries),
        health_impact=HEALTH_IMPACT[quality],
        quick_actions=quick_actions,
        provider_used=LOCAL_FALLBACK,
    )
