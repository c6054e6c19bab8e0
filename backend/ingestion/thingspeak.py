"""ThingSpeak telemetry channel client and payload adapter."""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import httpx

from models import FieldMapping, FieldMatch, Reading, SourceKind
from ingestion.field_mapping import resolve_field_mapping
from ingestion.normalizer import normalize_rows, DEFAULT_SAMPLE_INTERVAL
from exceptions import ExternalAPIError
from logging_config import get_logger

logger = get_logger("ingestion.thingspeak")

FIELD_SLOTS = [f"field{i}" for i in range(1, 9)]


class ThingSpeakClient:
    """Client for the ThingSpeak channel feed API."""

    BASE_URL = "https://api.thingspeak.com"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize ThingSpeak client.

        Args:
            base_url: API root (defaults to the public service)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_channel_feed(
        self,
        channel_id: str,
        read_api_key: Optional[str] = None,
        results: int = 200
    ) -> Dict[str, Any]:
        """
        Fetch the latest feed entries of a channel.

        Args:
            channel_id: ThingSpeak channel ID
            read_api_key: Read key for private channels
            results: Number of entries to fetch

        Returns:
            Raw ``{"channel": ..., "feeds": [...]}`` payload

        Raises:
            ExternalAPIError: If the request fails or the body is malformed
        """
        params: Dict[str, Any] = {"results": results}
        if read_api_key:
            params["api_key"] = read_api_key

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(
                    f"{self.base_url}/channels/{channel_id}/feeds.json",
                    params=params,
                    headers={"Accept": "application/json"}
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise ExternalAPIError(
                f"ThingSpeak returned HTTP {e.response.status_code}",
                api_name="ThingSpeak",
                details={"channel_id": channel_id, "status": e.response.status_code}
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalAPIError(
                f"Failed to fetch ThingSpeak channel {channel_id}: {e}",
                api_name="ThingSpeak",
                details={"channel_id": channel_id}
            )

        if not isinstance(data, dict) or not isinstance(data.get("feeds"), list):
            raise ExternalAPIError(
                "Invalid ThingSpeak response structure",
                api_name="ThingSpeak",
                details={"channel_id": channel_id}
            )

        logger.info(f"Fetched {len(data['feeds'])} entries from channel {channel_id}")
        return data


def channel_labels(channel: Dict[str, Any]) -> Dict[str, str]:
    """Human-readable labels of the populated field slots."""
    return {
        slot: str(channel[slot])
        for slot in FIELD_SLOTS
        if channel.get(slot)
    }


def resolve_channel_mapping(channel: Dict[str, Any], feeds: List[Dict[str, Any]]) -> FieldMapping:
    """
    Map channel field slots onto canonical metrics.

    Labels drive the lexicon match; slots that appear in the feed but carry no
    label remain available for positional guessing.
    """
    labels = channel_labels(channel)
    present = [
        slot for slot in FIELD_SLOTS
        if slot in labels or any(slot in feed for feed in feeds)
    ]
    mapping = resolve_field_mapping(present, labels=labels)

    # created_at is the only timestamp a feed entry carries
    fields = dict(mapping.fields)
    fields.pop("timestamp", None)
    fields["timestamp"] = FieldMatch(field="created_at")
    return FieldMapping(fields=fields)


def normalize_channel_feed(
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
    sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL
) -> Tuple[FieldMapping, List[Reading], Dict[str, Any]]:
    """
    Turn a raw channel payload into canonical readings.

    Args:
        payload: ``{"channel": {...}, "feeds": [...]}``
        now: Reference time for synthesized timestamps
        sample_interval: Spacing of synthesized timestamps

    Returns:
        (mapping, readings, source details)

    Raises:
        EmptySourceError: If the channel has no feed entries
    """
    channel = payload.get("channel") or {}
    feeds = payload.get("feeds") or []

    mapping = resolve_channel_mapping(channel, feeds)
    readings = normalize_rows(
        feeds, mapping, SourceKind.THINGSPEAK,
        now=now, sample_interval=sample_interval
    )

    details = {
        "channel_id": channel.get("id"),
        "channel_name": channel.get("name") or "Unknown Channel",
        "description": channel.get("description") or "",
        "field_mapping": mapping.as_dict(),
        "guessed_fields": mapping.guessed(),
        "sample_count": len(readings),
    }
    return mapping, readings, details
