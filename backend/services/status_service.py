"""Service for system status and health checks."""
from typing import Dict, Any, List

from logging_config import get_logger

SUPPORTED_PROVIDERS = ("gemini", "groq", "anthropic")


class StatusService:
    """Service for reporting which insight providers are usable."""

    def __init__(self, settings):
        """
        Initialize status service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.logger = get_logger("services.status")

    def get_system_status(self) -> Dict[str, Any]:
        """
        Get provider configuration and overall health.

        Returns:
            Dictionary containing status, provider details and the chain order
        """
        self.logger.info("Retrieving system status")

        providers = self._get_providers()
        chain = [
            p["name"] for p in providers
            if p["role"] in ("primary", "secondary") and p["credentials"] > 0
        ]

        return {
            "status": self._determine_health_status(chain),
            "providers": providers,
            "chain": chain + ["local-fallback"],
            "candidate_count": self._candidate_count(),
        }

    def _get_providers(self) -> List[Dict[str, Any]]:
        providers = []
        for name in SUPPORTED_PROVIDERS:
            if name == self.settings.primary_provider:
                role = "primary"
            elif name == self.settings.secondary_provider:
                role = "secondary"
            else:
                role = "unused"

            providers.append({
                "name": name,
                "role": role,
                "credentials": len(self.settings.api_keys_for(name)),
                "models": self.settings.models_for(name),
            })
        return providers

    def _candidate_count(self) -> int:
        primary = self.settings.primary_provider
        count = len(self.settings.api_keys_for(primary)) * len(self.settings.models_for(primary))

        secondary = self.settings.secondary_provider
        if secondary and secondary != primary and self.settings.api_keys_for(secondary):
            count += 1
        return count

    def _determine_health_status(self, chain: List[str]) -> str:
        """
        Determine overall system health.

        Returns:
            "healthy" when an AI provider is usable, "degraded" when only the
            local fallback analyzer is available
        """
        return "healthy" if chain else "degraded"
