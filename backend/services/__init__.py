"""Service layer for business logic."""
from .analysis_service import AnalysisService
from .status_service import StatusService
from .ingestion_service import IngestionService

__all__ = ["AnalysisService", "StatusService", "IngestionService"]
