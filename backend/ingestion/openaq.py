"""OpenAQ public air-quality client and location flattening."""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import httpx

from models import FieldMapping, Reading, SourceKind
from ingestion.field_mapping import resolve_field_mapping
from ingestion.normalizer import normalize_rows, parse_timestamp, DEFAULT_SAMPLE_INTERVAL
from exceptions import ExternalAPIError
from logging_config import get_logger

logger = get_logger("ingestion.openaq")

# OpenAQ parameter name -> canonical metric
PARAMETER_ALIASES = {
    "pm25": "pm25",
    "pm2.5": "pm25",
    "pm10": "pm10",
    "o3": "o3",
    "no2": "no2",
    "so2": "so2",
    "co": "co",
    "co2": "co2",
    "temperature": "temperature",
    "relativehumidity": "humidity",
    "humidity": "humidity",
}


class OpenAQClient:
    """Client for the OpenAQ latest-measurements API."""

    BASE_URL = "https://api.openaq.org/v2"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize OpenAQ client.

        Args:
            base_url: API root (defaults to the public v2 service)
            api_key: Optional OpenAQ API key
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["X-API-Key"] = api_key
        self.timeout = timeout
        self.transport = transport

    async def get_locations(
        self,
        city: Optional[str] = None,
        coordinates: Optional[Tuple[float, float]] = None,
        radius_m: int = 25000,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """
        Get the latest measurements per monitoring location.

        Args:
            city: City name filter
            coordinates: (lat, lon) centre for a radius search
            radius_m: Search radius in metres (with coordinates)
            limit: Maximum number of locations

        Returns:
            List of location dictionaries with ``measurements``

        Raises:
            ExternalAPIError: If the request fails or the body is malformed
        """
        params: Dict[str, Any] = {"limit": limit}
        if city:
            params["city"] = city
        if coordinates:
            params["coordinates"] = f"{coordinates[0]},{coordinates[1]}"
            params["radius"] = radius_m

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(
                    f"{self.base_url}/latest",
                    headers=self.headers,
                    params=params
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise ExternalAPIError(
                f"OpenAQ returned HTTP {e.response.status_code}",
                api_name="OpenAQ",
                details={"params": params, "status": e.response.status_code}
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalAPIError(
                f"Failed to fetch OpenAQ data: {e}",
                api_name="OpenAQ",
                details={"params": params}
            )

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ExternalAPIError(
                "Invalid OpenAQ response structure",
                api_name="OpenAQ",
                details={"params": params}
            )

        logger.info(f"Fetched {len(results)} OpenAQ locations")
        return results


def flatten_locations(locations: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    """
    Group measurements by location into one canonical row each.

    Each row carries the newest value per parameter under its canonical name
    and the newest ``lastUpdated`` as its timestamp. Rows are ordered by
    timestamp.

    Args:
        locations: OpenAQ ``results`` entries

    Returns:
        (rows, units) where units maps canonical metric -> reported unit
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    newest: Dict[Tuple[str, str], datetime] = {}
    units: Dict[str, str] = {}

    for idx, location in enumerate(locations):
        name = str(location.get("location") or location.get("name") or f"location-{idx}")
        row = grouped.setdefault(name, {"location": name, "timestamp": None})

        for measurement in location.get("measurements") or []:
            metric = PARAMETER_ALIASES.get(str(measurement.get("parameter", "")).lower())
            if metric is None:
                continue

            updated = parse_timestamp(measurement.get("lastUpdated"))
            key = (name, metric)
            if key in newest and updated is not None and updated <= newest[key]:
                continue
            if key in newest and updated is None:
                continue

            row[metric] = measurement.get("value")
            if updated is not None:
                newest[key] = updated
                if row["timestamp"] is None or updated > row["timestamp"]:
                    row["timestamp"] = updated
            if measurement.get("unit"):
                units[metric] = str(measurement["unit"])

    rows = list(grouped.values())
    dated = sorted((r for r in rows if r["timestamp"] is not None), key=lambda r: r["timestamp"])
    undated = [r for r in rows if r["timestamp"] is None]
    return undated + dated, units


def normalize_locations(
    locations: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL
) -> Tuple[FieldMapping, List[Reading], Dict[str, Any]]:
    """
    Turn OpenAQ locations into canonical readings.

    Rows already use canonical keys, so the mapping is lexicon-only and no
    positional guessing takes place.

    Raises:
        EmptySourceError: If no locations were returned
    """
    rows, units = flatten_locations(locations)
    columns = sorted({key for row in rows for key in row})
    mapping = resolve_field_mapping(columns, positional_fallback=False)
    readings = normalize_rows(
        rows, mapping, SourceKind.OPENAQ,
        now=now, sample_interval=sample_interval
    )

    details = {
        "stations": [row["location"] for row in rows],
        "parameters": sorted(units),
        "units": units,
        "sample_count": len(readings),
    }
    return mapping, readings, details
