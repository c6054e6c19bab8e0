"""Turn raw provider text into a validated Insight."""
import json
import re
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from models import Insight
from analytics.health import score_category
from exceptions import InvalidResponseError

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
VALID_CATEGORIES = {"Excellent", "Good", "Moderate", "Poor", "Hazardous"}


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    if "```" not in cleaned:
        return cleaned

    # Fenced block somewhere inside prose
    match = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL | re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return _FENCE.sub("", cleaned).strip()


def _coerce_score(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        score = float(value)
    except (TypeError, ValueError):
        return fallback
    if score != score:  # NaN
        return fallback
    return int(round(min(100.0, max(0.0, score))))


def parse_insight_text(text: str, provider_used: str, health_score: int) -> Insight:
    """
    Parse a provider response into an Insight.

    The payload must be a JSON object with a non-empty ``summary`` and a list
    of findings (``insights`` or ``findings``). A missing or malformed score
    falls back to the locally computed health score; an unknown category is
    derived from the score.

    Args:
        text: Raw response text, optionally fenced
        provider_used: Candidate tag recorded on the insight
        health_score: Local health score used to fill gaps

    Returns:
        Validated Insight

    Raises:
        InvalidResponseError: If the text is not a usable insight
    """
    provider = provider_used.split(":", 1)[0]

    try:
        payload = json.loads(strip_code_fences(text or ""))
    except json.JSONDecodeError as e:
        raise InvalidResponseError(
            f"Response is not valid JSON: {e.msg}",
            provider=provider,
            details={"provider_used": provider_used}
        )

    if not isinstance(payload, dict):
        raise InvalidResponseError(
            "Response JSON is not an object",
            provider=provider,
            details={"provider_used": provider_used}
        )

    summary = payload.get("summary")
    findings = payload.get("insights", payload.get("findings"))
    missing = []
    if not isinstance(summary, str) or not summary.strip():
        missing.append("summary")
    if not isinstance(findings, list):
        missing.append("insights")
    if missing:
        raise InvalidResponseError(
            f"Response missing required fields: {', '.join(missing)}",
            provider=provider,
            details={"provider_used": provider_used, "missing": missing}
        )

    raw_score = payload.get("airQualityScore", payload.get("score"))
    score = _coerce_score(raw_score, health_score)

    category = payload.get("scoreCategory", payload.get("category"))
    if not isinstance(category, str) or category.strip().capitalize() not in VALID_CATEGORIES:
        category = score_category(score)

    data: Dict[str, Any] = {
        "summary": summary.strip(),
        "score": score,
        "category": category,
        "findings": findings,
        "recommendations": payload.get("recommendations") or [],
        "trend": payload.get("trend"),
        "health_impact": payload.get("healthImpact", payload.get("health_impact")),
        "quick_actions": payload.get("quickActions", payload.get("quick_actions")) or [],
        "provider_used": provider_used,
    }

    try:
        return Insight.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidResponseError(
            f"Response failed validation: {e.error_count()} error(s)",
            provider=provider,
            details={"provider_used": provider_used, "errors": [err["msg"] for err in e.errors()]}
        )
