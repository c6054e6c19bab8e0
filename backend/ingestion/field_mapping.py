"""Infer which source field carries each canonical metric."""
import re
from typing import Dict, List, Optional, Sequence, Tuple

from models import FieldMapping, FieldMatch
from logging_config import get_logger

logger = get_logger("ingestion.field_mapping")

# Canonical slot -> keywords, in declared (matching and positional) order
LEXICON: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("pm25", ("pm2.5", "pm25", "pm 2.5")),
    ("pm10", ("pm10", "pm 10")),
    ("temperature", ("temp",)),
    ("humidity", ("humid", "moisture")),
    ("noise", ("noise", "sound", "decibel", "db")),
    ("co2", ("co2", "carbon dioxide")),
    ("timestamp", ("time", "date", "created_at")),
)

# Keywords too short to match inside a word; they must start a token
TOKEN_KEYWORDS = {"db"}

# Slots that may be guessed from column position when no label matches
POSITIONAL_SLOTS = ("pm25", "pm10", "temperature", "humidity", "noise")

# Bookkeeping columns never guessed as measurements
NON_MEASUREMENT_FIELDS = {"entry_id", "id", "index", "latitude", "longitude", "elevation", "status"}


def match_keyword(text: str) -> Optional[str]:
    """
    First canonical slot whose keyword occurs in text.

    Args:
        text: Field name or label (case-insensitive)

    Returns:
        Canonical slot name or None
    """
    lower = text.lower().strip()
    if not lower:
        return None

    for slot, keywords in LEXICON:
        if any(_keyword_in(keyword, lower) for keyword in keywords):
            return slot
    return None


def _keyword_in(keyword: str, lower: str) -> bool:
    if keyword in TOKEN_KEYWORDS:
        return re.search(rf"(?<![a-z]){re.escape(keyword)}", lower) is not None
    return keyword in lower


def resolve_field_mapping(
    fields: Sequence[str],
    labels: Optional[Dict[str, str]] = None,
    positional_fallback: bool = True
) -> FieldMapping:
    """
    Build a FieldMapping in two phases.

    Phase one matches field names (or their human-readable labels) against
    the lexicon; the first field matching a slot wins and later duplicates are
    ignored. Phase two assigns still-empty positional slots to the remaining
    unmatched fields in schema order. Positional guesses are best effort only:
    they are marked ``confident=False`` and can mislabel data when a source
    orders its columns differently.

    Args:
        fields: Source field identifiers in schema order
        labels: Optional field identifier -> human label (telemetry slots)
        positional_fallback: Whether to run the positional phase

    Returns:
        FieldMapping referencing only fields present in ``fields``
    """
    labels = labels or {}
    assigned: Dict[str, FieldMatch] = {}
    claimed: List[str] = []

    for field in fields:
        text = labels.get(field) or field
        slot = match_keyword(str(text))
        if slot is None:
            continue

        claimed.append(field)
        if slot in assigned:
            logger.debug(
                f"Ignoring duplicate {slot} field '{field}' "
                f"(already mapped to '{assigned[slot].field}')"
            )
            continue

        assigned[slot] = FieldMatch(field=field, confident=True)

    if positional_fallback:
        free_fields = [
            f for f in fields
            if f not in claimed and str(f).lower().strip() not in NON_MEASUREMENT_FIELDS
        ]
        for slot in POSITIONAL_SLOTS:
            if slot in assigned:
                continue
            if not free_fields:
                break

            field = free_fields.pop(0)
            assigned[slot] = FieldMatch(field=field, confident=False)
            logger.warning(
                f"FieldMappingAmbiguity: no field matched '{slot}', "
                f"guessing '{field}' by position"
            )

    # Preserve lexicon order for stable output
    ordered = {slot: assigned[slot] for slot, _ in LEXICON if slot in assigned}
    return FieldMapping(fields=ordered)
