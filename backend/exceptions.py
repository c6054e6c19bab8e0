"""Custom exceptions for Sensor Insight."""
from typing import Optional, Dict, Any


class SensorInsightException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details
            status_code: HTTP status code for API responses
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code


class ValidationError(SensorInsightException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, status_code=422)


class EmptySourceError(SensorInsightException):
    """Raised when a source yields no rows to normalize."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, status_code=422)


class ExternalAPIError(SensorInsightException):
    """Raised when external data source calls fail."""

    def __init__(
        self,
        message: str,
        api_name: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details, status_code=502)
        self.api_name = api_name


class ConfigurationError(SensorInsightException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, status_code=500)


class ProviderError(SensorInsightException):
    """
    Raised by an AI provider call that did not produce usable text.

    The orchestrator treats a plain ProviderError as a transient failure.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details, status_code=502)
        self.provider = provider
        self.status = status


class QuotaExceededError(ProviderError):
    """Raised when a provider reports a rate or usage limit for a credential."""


class InvalidResponseError(ProviderError):
    """Raised when a provider response cannot be parsed into an insight."""
