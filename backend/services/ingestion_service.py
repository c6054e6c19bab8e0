"""Service for pulling and normalizing sensor data from each source."""
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timedelta, timezone

from models import FieldMapping, Reading, SourceDataset, SourceKind
from ingestion.thingspeak import ThingSpeakClient, normalize_channel_feed
from ingestion.openaq import OpenAQClient, normalize_locations
from ingestion.spreadsheet import normalize_spreadsheet
from ingestion.normalizer import drop_empty_readings
from exceptions import (
    EmptySourceError,
    ExternalAPIError,
    SensorInsightException,
    ValidationError,
)
from logging_config import get_logger


class IngestionService:
    """Service for coordinating ingestion from telemetry, OpenAQ and uploads."""

    def __init__(
        self,
        thingspeak: ThingSpeakClient,
        openaq: OpenAQClient,
        sample_interval: timedelta = timedelta(seconds=60)
    ):
        """
        Initialize ingestion service.

        Args:
            thingspeak: ThingSpeak channel client
            openaq: OpenAQ client
            sample_interval: Spacing of synthesized timestamps
        """
        self.thingspeak = thingspeak
        self.openaq = openaq
        self.sample_interval = sample_interval
        self.logger = get_logger("services.ingestion")

    @classmethod
    def from_settings(cls, settings) -> "IngestionService":
        """Build the service and its clients from application settings."""
        return cls(
            thingspeak=ThingSpeakClient(
                base_url=settings.thingspeak_base_url,
                timeout=settings.http_timeout_seconds
            ),
            openaq=OpenAQClient(
                base_url=settings.openaq_base_url,
                api_key=settings.openaq_api_key or None,
                timeout=settings.http_timeout_seconds
            ),
            sample_interval=timedelta(seconds=settings.sample_interval_seconds)
        )

    def _dataset(
        self,
        source: SourceKind,
        normalized: Tuple[FieldMapping, List[Reading], Dict[str, Any]],
        drop_empty: bool
    ) -> SourceDataset:
        mapping, readings, details = normalized

        dropped = 0
        if drop_empty:
            kept = drop_empty_readings(readings)
            dropped = len(readings) - len(kept)
            if not kept:
                raise EmptySourceError(
                    f"No {source.value} rows contain sensor values",
                    details={"source": source.value, "row_count": len(readings)}
                )
            readings = kept

        if mapping.guessed():
            self.logger.warning(
                f"{source.value} fields guessed by position: {', '.join(mapping.guessed())}"
            )

        return SourceDataset(
            source=source,
            details=details,
            mapping=mapping,
            readings=readings,
            meta={
                "fetched_at": datetime.now(timezone.utc).isoformat(),
                "row_count": len(readings) + dropped,
                "dropped_count": dropped,
            }
        )

    async def ingest_thingspeak(
        self,
        channel_id: str,
        read_api_key: Optional[str] = None,
        results: int = 200,
        drop_empty: bool = False
    ) -> SourceDataset:
        """
        Fetch and normalize a ThingSpeak channel.

        Args:
            channel_id: Channel ID
            read_api_key: Read key for private channels
            results: Number of feed entries
            drop_empty: Remove entries with no sensor values

        Returns:
            Normalized dataset

        Raises:
            EmptySourceError: If the channel has no entries
            ExternalAPIError: If the fetch fails
        """
        try:
            self.logger.info(f"Starting ThingSpeak ingestion for channel {channel_id}")
            payload = await self.thingspeak.get_channel_feed(channel_id, read_api_key, results)
            dataset = self._dataset(
                SourceKind.THINGSPEAK,
                normalize_channel_feed(payload, sample_interval=self.sample_interval),
                drop_empty
            )
            self.logger.info(f"Ingested {len(dataset.readings)} readings from channel {channel_id}")
            return dataset

        except EmptySourceError:
            self.logger.warning(f"ThingSpeak channel {channel_id} has no entries")
            raise

        except ExternalAPIError as e:
            self.logger.error(f"ThingSpeak API error: {e.message}", extra={"details": e.details})
            raise

        except SensorInsightException:
            raise

        except Exception as e:
            self.logger.exception(f"Unexpected error during ThingSpeak ingestion: {e}")
            raise ExternalAPIError(
                "Failed to ingest ThingSpeak channel",
                api_name="ThingSpeak",
                details={"channel_id": channel_id, "error": str(e)}
            )

    async def ingest_openaq(
        self,
        city: Optional[str] = None,
        coordinates: Optional[Tuple[float, float]] = None,
        radius_m: int = 25000,
        limit: int = 100
    ) -> SourceDataset:
        """
        Fetch and normalize OpenAQ monitoring locations.

        Raises:
            ValidationError: If neither city nor coordinates is given
            EmptySourceError: If no locations were found
            ExternalAPIError: If the fetch fails
        """
        if not city and not coordinates:
            raise ValidationError(
                "Either city or coordinates is required",
                details={"fields": ["city", "coordinates"]}
            )

        try:
            self.logger.info(f"Starting OpenAQ ingestion for {city or coordinates}")
            locations = await self.openaq.get_locations(
                city=city, coordinates=coordinates, radius_m=radius_m, limit=limit
            )
            dataset = self._dataset(
                SourceKind.OPENAQ,
                normalize_locations(locations, sample_interval=self.sample_interval),
                drop_empty=False
            )
            self.logger.info(f"Ingested {len(dataset.readings)} OpenAQ locations")
            return dataset

        except EmptySourceError:
            self.logger.warning(f"OpenAQ returned no locations for {city or coordinates}")
            raise

        except ExternalAPIError as e:
            self.logger.error(f"OpenAQ API error: {e.message}", extra={"details": e.details})
            raise

        except SensorInsightException:
            raise

        except Exception as e:
            self.logger.exception(f"Unexpected error during OpenAQ ingestion: {e}")
            raise ExternalAPIError(
                "Failed to ingest OpenAQ data",
                api_name="OpenAQ",
                details={"city": city, "error": str(e)}
            )

    def ingest_spreadsheet(
        self,
        content: bytes,
        filename: str,
        drop_empty: bool = False
    ) -> SourceDataset:
        """
        Parse and normalize an uploaded spreadsheet.

        Raises:
            ValidationError: If the file cannot be parsed
            EmptySourceError: If the file has no data rows
        """
        self.logger.info(f"Starting spreadsheet ingestion for {filename}")
        dataset = self._dataset(
            SourceKind.SPREADSHEET,
            normalize_spreadsheet(content, filename, sample_interval=self.sample_interval),
            drop_empty
        )
        self.logger.info(
            f"Ingested {len(dataset.readings)} readings from {filename} "
            f"({dataset.meta['dropped_count']} empty rows dropped)"
        )
        return dataset
