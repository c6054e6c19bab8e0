"""Tests for ThingSpeak, OpenAQ and spreadsheet source adapters."""
import pytest
import httpx
from datetime import datetime, timezone

from ingestion.thingspeak import ThingSpeakClient, normalize_channel_feed
from ingestion.openaq import OpenAQClient, flatten_locations, normalize_locations
from ingestion.spreadsheet import parse_spreadsheet, normalize_spreadsheet
from exceptions import EmptySourceError, ExternalAPIError, ValidationError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

CHANNEL_PAYLOAD = {
    "channel": {
        "id": 98765,
        "name": "Living Room",
        "field1": "PM2.5",
        "field2": "PM10",
        "field3": "Temp (C)",
        "field4": "Humidity",
    },
    "feeds": [
        {"created_at": "2024-01-01T00:00:00Z", "entry_id": 1,
         "field1": "8", "field2": "15", "field3": "21.0", "field4": "45"},
        {"created_at": "2024-01-01T00:01:00Z", "entry_id": 2,
         "field1": "9", "field2": None, "field3": "21.2", "field4": "46"},
        {"created_at": "2024-01-01T00:02:00Z", "entry_id": 3,
         "field1": "", "field2": "17", "field3": "21.4", "field4": "47"},
    ],
}

OPENAQ_RESULTS = [
    {
        "location": "Station A",
        "city": "Delhi",
        "measurements": [
            {"parameter": "pm25", "value": 80.0, "unit": "µg/m³", "lastUpdated": "2024-01-01T02:00:00Z"},
            {"parameter": "pm10", "value": 120.0, "unit": "µg/m³", "lastUpdated": "2024-01-01T01:00:00Z"},
            {"parameter": "bc", "value": 3.0, "unit": "µg/m³", "lastUpdated": "2024-01-01T01:00:00Z"},
        ],
    },
    {
        "location": "Station B",
        "city": "Delhi",
        "measurements": [
            {"parameter": "pm2.5", "value": 40.0, "unit": "µg/m³", "lastUpdated": "2024-01-01T00:30:00Z"},
            {"parameter": "relativehumidity", "value": 55.0, "unit": "%", "lastUpdated": "2024-01-01T00:30:00Z"},
        ],
    },
    {
        "location": "Station A",
        "measurements": [
            {"parameter": "pm25", "value": 70.0, "unit": "µg/m³", "lastUpdated": "2024-01-01T00:00:00Z"},
        ],
    },
]


class TestThingSpeakClient:
    """Test ThingSpeak HTTP client."""

    @pytest.mark.asyncio
    async def test_fetches_feed(self):
        """Test the client requests the channel feed with params."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=CHANNEL_PAYLOAD)

        client = ThingSpeakClient(transport=httpx.MockTransport(handler))
        payload = await client.get_channel_feed("98765", read_api_key="KEY", results=50)

        assert seen["path"] == "/channels/98765/feeds.json"
        assert seen["params"] == {"results": "50", "api_key": "KEY"}
        assert len(payload["feeds"]) == 3

    @pytest.mark.asyncio
    async def test_http_error_raises_external_api_error(self):
        """Test that HTTP failures are wrapped."""
        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={}))
        client = ThingSpeakClient(transport=transport)

        with pytest.raises(ExternalAPIError) as exc_info:
            await client.get_channel_feed("1")

        assert exc_info.value.api_name == "ThingSpeak"
        assert exc_info.value.details["status"] == 404

    @pytest.mark.asyncio
    async def test_invalid_body_raises_external_api_error(self):
        """Test that a body without feeds is rejected."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"channel": {}}))
        client = ThingSpeakClient(transport=transport)

        with pytest.raises(ExternalAPIError):
            await client.get_channel_feed("1")


class TestNormalizeChannelFeed:
    """Test ThingSpeak payload normalization."""

    def test_readings_follow_labels(self):
        """Test values land in the metrics named by channel labels."""
        mapping, readings, details = normalize_channel_feed(CHANNEL_PAYLOAD, now=NOW)

        assert len(readings) == 3
        assert readings[0].pm25 == 8.0
        assert readings[0].temperature == 21.0
        assert readings[1].pm10 is None
        assert readings[2].pm25 is None
        assert readings[0].timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert details["channel_name"] == "Living Room"
        assert details["field_mapping"]["temperature"] == "field3"
        assert details["guessed_fields"] == []

    def test_empty_feed_raises(self):
        """Test that a channel with no entries raises EmptySourceError."""
        with pytest.raises(EmptySourceError):
            normalize_channel_feed({"channel": {"id": 1}, "feeds": []})


class TestOpenAQ:
    """Test OpenAQ client and flattening."""

    @pytest.mark.asyncio
    async def test_client_sends_filters_and_key(self):
        """Test city filter and API key header are sent."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json={"results": OPENAQ_RESULTS})

        client = OpenAQClient(api_key="secret", transport=httpx.MockTransport(handler))
        locations = await client.get_locations(city="Delhi", limit=10)

        assert seen["path"].endswith("/latest")
        assert seen["params"] == {"city": "Delhi", "limit": "10"}
        assert seen["key"] == "secret"
        assert len(locations) == 3

    @pytest.mark.asyncio
    async def test_client_invalid_body(self):
        """Test that a body without results is rejected."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"meta": {}}))
        client = OpenAQClient(transport=transport)

        with pytest.raises(ExternalAPIError):
            await client.get_locations(city="Nowhere")

    def test_flatten_groups_by_location(self):
        """Test one row per location with the newest values."""
        rows, units = flatten_locations(OPENAQ_RESULTS)

        assert [r["location"] for r in rows] == ["Station B", "Station A"]
        station_a = rows[1]
        assert station_a["pm25"] == 80.0
        assert station_a["pm10"] == 120.0
        assert "bc" not in station_a
        assert station_a["timestamp"] == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
        assert rows[0]["humidity"] == 55.0
        assert units["humidity"] == "%"

    def test_normalize_locations(self):
        """Test flattened locations become readings without guessing."""
        mapping, readings, details = normalize_locations(OPENAQ_RESULTS, now=NOW)

        assert len(readings) == 2
        assert readings[0].pm25 == 40.0
        assert readings[1].pm25 == 80.0
        assert mapping.guessed() == []
        assert details["stations"] == ["Station B", "Station A"]

    def test_normalize_no_locations_raises(self):
        """Test an empty result list raises EmptySourceError."""
        with pytest.raises(EmptySourceError):
            normalize_locations([])


class TestSpreadsheet:
    """Test CSV/TSV parsing."""

    def test_parse_csv(self):
        """Test headers and rows are returned with blanks as None."""
        content = b"Time,PM2.5,Temperature\n2024-01-01 00:00,10,21\n\n2024-01-01 00:01,,22\n"

        headers, rows = parse_spreadsheet(content, "data.csv")

        assert headers == ["Time", "PM2.5", "Temperature"]
        assert len(rows) == 2
        assert rows[1]["PM2.5"] is None
        assert rows[1]["Temperature"] == "22"

    def test_row_of_empty_cells_kept(self):
        """Test a data row with only empty cells is kept as an all-null row."""
        content = b"timestamp,pm25,humidity\n2024-01-01T00:00:00Z,10,40\n,,\n2024-01-01T00:02:00Z,12,42\n"

        headers, rows = parse_spreadsheet(content, "data.csv")

        assert len(rows) == 3
        assert rows[1] == {"timestamp": None, "pm25": None, "humidity": None}

        mapping, readings, details = normalize_spreadsheet(content, "data.csv", now=NOW)
        assert len(readings) == 3
        assert [r.entry_id for r in readings] == [1, 2, 3]
        assert readings[1].has_data() is False
        assert details["sample_count"] == 3

    def test_epoch_timestamp_column(self):
        """Test a column of Unix seconds keeps the recorded times."""
        content = b"time,pm25\n1700000000,10\n1700000060,11\n"

        mapping, readings, details = normalize_spreadsheet(content, "data.csv", now=NOW)

        assert mapping.get("timestamp") == "time"
        assert [r.timestamp for r in readings] == [
            datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
            datetime(2023, 11, 14, 22, 14, 20, tzinfo=timezone.utc),
        ]
        assert [r.pm25 for r in readings] == [10.0, 11.0]

    def test_parse_tsv(self):
        """Test a .tsv file is split on tabs."""
        content = b"pm25\thumidity\n5\t40\n"

        headers, rows = parse_spreadsheet(content, "data.tsv")

        assert headers == ["pm25", "humidity"]
        assert rows == [{"pm25": "5", "humidity": "40"}]

    def test_header_only_raises_empty(self):
        """Test a file without data rows raises EmptySourceError."""
        with pytest.raises(EmptySourceError):
            parse_spreadsheet(b"pm25,pm10\n", "data.csv")

    def test_blank_file_raises_empty(self):
        """Test an empty upload raises EmptySourceError."""
        with pytest.raises(EmptySourceError):
            parse_spreadsheet(b"", "data.csv")

    def test_binary_file_raises_validation(self):
        """Test undecodable content raises ValidationError."""
        with pytest.raises(ValidationError):
            parse_spreadsheet(b"\xff\xfe\x00\x81\x82", "data.csv")

    def test_normalize_spreadsheet(self):
        """Test headers map onto canonical readings."""
        content = (
            b"Date,PM2.5 (ug/m3),Humidity %\n"
            b"2024-01-01T00:00:00Z,12,40\n"
            b"2024-01-01T00:01:00Z,14,41\n"
        )

        mapping, readings, details = normalize_spreadsheet(content, "upload.csv")

        assert mapping.get("pm25") == "PM2.5 (ug/m3)"
        assert mapping.get("timestamp") == "Date"
        assert [r.pm25 for r in readings] == [12.0, 14.0]
        assert readings[1].humidity == 41.0
        assert details["guessed_fields"] == []
