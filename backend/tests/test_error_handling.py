"""Tests for error handling and logging."""
import pytest
from fastapi.testclient import TestClient

from main import app, get_analysis_service, get_status_service
from exceptions import (
    SensorInsightException,
    ValidationError,
    EmptySourceError,
    ExternalAPIError,
    ConfigurationError,
    ProviderError,
    QuotaExceededError,
    InvalidResponseError,
)
from services import AnalysisService
from llm.orchestrator import InsightOrchestrator
from llm.providers import GeminiProvider


client = TestClient(app)

READINGS = [
    {"timestamp": "2024-01-01T00:00:00Z", "entry_id": 1, "pm25": 8, "humidity": 45},
    {"timestamp": "2024-01-01T00:01:00Z", "entry_id": 2, "pm25": 9, "humidity": 46},
    {"timestamp": "2024-01-01T00:02:00Z", "entry_id": 3, "pm25": 10, "humidity": 47},
]


@pytest.fixture
def offline_analysis():
    """Analysis service with no provider keys, so only the local analyzer runs."""
    orchestrator = InsightOrchestrator(
        primary=GeminiProvider("https://gemini.test"),
        credentials=[],
        models=["gemini-1.5-flash"],
        secondary=None,
        secondary_credential=None,
        secondary_model=None
    )
    app.dependency_overrides[get_analysis_service] = lambda: AnalysisService(orchestrator)
    yield
    app.dependency_overrides.pop(get_analysis_service, None)


class TestCustomExceptions:
    """Test custom exception classes."""

    def test_sensor_insight_exception_base(self):
        """Test base exception class."""
        exc = SensorInsightException(
            "Test error",
            details={"key": "value"},
            status_code=400
        )
        assert exc.message == "Test error"
        assert exc.details == {"key": "value"}
        assert exc.status_code == 400

    def test_validation_error(self):
        """Test validation error has correct status code."""
        exc = ValidationError("Invalid input")
        assert exc.status_code == 422

    def test_empty_source_error(self):
        """Test empty source error."""
        exc = EmptySourceError("No rows")
        assert exc.status_code == 422
        assert exc.details == {}

    def test_external_api_error(self):
        """Test external API error."""
        exc = ExternalAPIError(
            "API call failed",
            api_name="ThingSpeak"
        )
        assert exc.status_code == 502
        assert exc.api_name == "ThingSpeak"

    def test_configuration_error(self):
        """Test configuration error."""
        exc = ConfigurationError("Missing API key")
        assert exc.status_code == 500

    def test_provider_error_hierarchy(self):
        """Test provider errors carry provider and status."""
        quota = QuotaExceededError("quota", provider="gemini", status=429)
        invalid = InvalidResponseError("bad body", provider="groq")

        assert isinstance(quota, ProviderError)
        assert isinstance(invalid, ProviderError)
        assert quota.provider == "gemini"
        assert quota.status == 429
        assert invalid.status is None
        assert quota.status_code == 502


class TestAPIErrorHandling:
    """Test API error handling."""

    def test_analyze_empty_readings(self, offline_analysis):
        """Test analyzing no readings returns EmptySourceError."""
        response = client.post("/analyze", json={"readings": []})
        assert response.status_code == 422
        data = response.json()
        assert data["type"] == "EmptySourceError"
        assert "error" in data

    def test_analyze_local_fallback(self, offline_analysis):
        """Test analysis answers without any provider configured."""
        response = client.post("/analyze", json={"readings": READINGS, "source": "spreadsheet"})
        assert response.status_code == 200
        data = response.json()
        assert data["insight"]["providerUsed"] == "local-fallback"
        assert data["healthScore"] == 95
        assert data["aqiCategory"] == "Good"
        assert data["sampleCount"] == 3

    def test_invalid_reading_rejected(self):
        """Test malformed readings return a validation error."""
        response = client.post(
            "/metrics",
            json={"readings": [{"timestamp": "not a date", "entry_id": 1}]}
        )
        assert response.status_code == 422
        data = response.json()
        assert data["type"] == "ValidationError"
        assert data["details"]

    def test_metrics_endpoint(self):
        """Test metrics summaries for posted readings."""
        response = client.post("/metrics", json={"readings": READINGS})
        assert response.status_code == 200
        data = response.json()
        assert data["metrics"]["pm25"]["trend"] == "increasing"
        assert data["metrics"]["pm25"]["count"] == 3
        assert data["metrics"]["noise"]["count"] == 0
        assert data["healthScore"] == 95

    def test_metrics_with_cleaning(self):
        """Test gap filling is applied when requested."""
        readings = READINGS + [
            {"timestamp": "2024-01-01T00:03:00Z", "entry_id": 4, "pm25": None, "humidity": 48},
            {"timestamp": "2024-01-01T00:04:00Z", "entry_id": 5, "pm25": 12, "humidity": 49},
        ]
        response = client.post("/metrics", json={"readings": readings, "clean": "linear"})
        assert response.status_code == 200
        data = response.json()
        assert data["readings"][3]["pm25"] == 11.0
        assert data["statistics"]["pm25"]["count"] == 5
        assert "peaks" in data

    def test_metrics_unknown_cleaning_method(self):
        response = client.post("/metrics", json={"readings": READINGS, "clean": "spline"})
        assert response.status_code == 422

    def test_openaq_requires_filter(self):
        """Test OpenAQ requests need a city or coordinates."""
        response = client.post("/sources/openaq", json={})
        assert response.status_code == 422
        assert response.json()["type"] == "ValidationError"

    def test_thingspeak_channel_must_be_numeric(self):
        """Test non-numeric channel IDs are rejected before any fetch."""
        response = client.post("/sources/thingspeak", json={"channel_id": "abc"})
        assert response.status_code == 422

    def test_spreadsheet_upload(self):
        """Test a CSV upload is normalized."""
        content = b"Time,PM2.5,Humidity\n2024-01-01 00:00,8,45\n2024-01-01 00:01,9,46\n"
        response = client.post(
            "/sources/spreadsheet",
            files={"file": ("room.csv", content, "text/csv")}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "spreadsheet"
        assert len(data["readings"]) == 2
        assert data["readings"][1]["pm25"] == 9.0

    def test_spreadsheet_header_only(self):
        """Test a header-only upload returns EmptySourceError."""
        response = client.post(
            "/sources/spreadsheet",
            files={"file": ("empty.csv", b"Time,PM2.5\n", "text/csv")}
        )
        assert response.status_code == 422
        assert response.json()["type"] == "EmptySourceError"


class TestGlobalExceptionHandlers:
    """Test global exception handlers."""

    def test_rate_limit_handler(self):
        """Test exceeding an endpoint limit returns a 429 JSON response."""
        headers = {"X-Forwarded-For": "203.0.113.9"}
        responses = [client.get("/status", headers=headers) for _ in range(61)]

        assert all(r.status_code == 200 for r in responses[:60])
        assert responses[-1].status_code == 429
        assert responses[-1].json()["type"] == "RateLimitError"
        assert responses[-1].headers["Retry-After"] == "60"

    def test_http_exception_handler(self):
        """Test HTTP exception handler."""
        # Request non-existent endpoint
        response = client.get("/nonexistent")
        assert response.status_code == 404
        data = response.json()
        # FastAPI's default 404 uses "detail", custom handlers use "error"
        assert "error" in data or "detail" in data

    def test_general_exception_handler(self):
        """Test unexpected errors become a 500 JSON response."""
        class BrokenStatus:
            def get_system_status(self):
                raise RuntimeError("status backend down")

        app.dependency_overrides[get_status_service] = lambda: BrokenStatus()
        try:
            response = TestClient(app, raise_server_exceptions=False).get("/status")
        finally:
            app.dependency_overrides.pop(get_status_service, None)

        assert response.status_code == 500
        assert response.json()["type"] == "InternalServerError"


class TestLogging:
    """Test logging configuration."""

    def test_logger_creation(self):
        """Test that loggers can be created."""
        from logging_config import get_logger

        logger = get_logger("test")
        assert logger is not None
        assert "test" in logger.name
        assert logger.name.startswith("sensor_insight.")

    def test_component_logger_names(self):
        """Test dotted component names nest under the application logger."""
        from logging_config import get_logger

        logger = get_logger("ingestion.openaq")
        assert logger.name == "sensor_insight.ingestion.openaq"
        assert logger.parent.name == "sensor_insight"

    def test_setup_logging(self):
        """Test logging setup."""
        from logging_config import setup_logging
        import tempfile
        from pathlib import Path

        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / "test.log"
            logger = setup_logging(log_level="DEBUG", log_file=log_file)

            assert logger is not None
            logger.info("Test message")

            # Verify log file was created
            assert log_file.exists()

            # Close all handlers to release file lock
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
