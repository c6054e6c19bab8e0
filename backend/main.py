"""Main FastAPI application for Sensor Insight."""
from contextlib import asynccontextmanager
from typing import List, Literal, Optional
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
import traceback

from config import settings, scoring_config
from models import Reading, SourceKind
from services import AnalysisService, StatusService, IngestionService
from exceptions import SensorInsightException
from logging_config import setup_logging, get_logger
from rate_limiting import limiter, RATE_LIMITS
from slowapi.errors import RateLimitExceeded


# Set up logging
logger = setup_logging(
    log_level=settings.log_level,
    log_file=settings.log_file
)

# Service instances (initialized in lifespan or on first use)
analysis_service: Optional[AnalysisService] = None
status_service: Optional[StatusService] = None
ingestion_service: Optional[IngestionService] = None


def get_analysis_service() -> AnalysisService:
    global analysis_service
    if analysis_service is None:
        analysis_service = AnalysisService.from_settings(
            settings, scoring_config.health_score_config()
        )
    return analysis_service


def get_status_service() -> StatusService:
    global status_service
    if status_service is None:
        status_service = StatusService(settings)
    return status_service


def get_ingestion_service() -> IngestionService:
    global ingestion_service
    if ingestion_service is None:
        ingestion_service = IngestionService.from_settings(settings)
    return ingestion_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    logger.info("Starting Sensor Insight...")

    get_analysis_service()
    get_status_service()
    get_ingestion_service()
    logger.info("Services initialized")

    provider_status = get_status_service().get_system_status()
    if provider_status["status"] == "degraded":
        logger.warning("No AI provider keys configured, insights will use local analysis")

    yield

    # Shutdown
    logger.info("Shutdown complete")


app = FastAPI(
    title="Sensor Insight",
    description="Environmental sensor ingestion, metrics and AI-assisted insights",
    version="0.1.0",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    logger.warning(
        f"Rate limit exceeded for {request.url.path}",
        extra={
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown"
        }
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "detail": "Too many requests. Please try again later.",
            "type": "RateLimitError"
        },
        headers={"Retry-After": "60"}
    )


@app.exception_handler(SensorInsightException)
async def sensor_insight_exception_handler(request: Request, exc: SensorInsightException):
    """Handle custom application exceptions."""
    logger.error(
        f"Application error: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "details": exc.details,
            "type": exc.__class__.__name__
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}: {exc.errors()}",
        extra={"path": request.url.path, "method": request.method}
    )

    # Pydantic V2 errors may include non-serializable objects
    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input")) if error.get("input") else None
        }
        if "ctx" in error and error["ctx"]:
            error_dict["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error_dict)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation failed",
            "details": errors,
            "type": "ValidationError"
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle FastAPI HTTP exceptions."""
    logger.warning(
        f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}",
        extra={"path": request.url.path, "method": request.method}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "type": "HTTPException"
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        f"Unexpected error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )
    # Internal details only in development
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "An unexpected error occurred",
            "type": "InternalServerError",
            "details": str(exc) if settings.reload else None
        }
    )


# Request/Response models
class ThingSpeakRequest(BaseModel):
    """Request model for pulling a ThingSpeak channel."""

    channel_id: str = Field(
        ...,
        min_length=1,
        max_length=20,
        pattern=r"^\d+$",
        description="Numeric ThingSpeak channel ID"
    )
    read_api_key: Optional[str] = Field(default=None, max_length=64)
    results: int = Field(default=200, ge=1, le=8000)
    drop_empty: bool = False

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("read_api_key")
    @classmethod
    def blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class OpenAQRequest(BaseModel):
    """Request model for pulling OpenAQ locations."""

    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_m: int = Field(default=25000, ge=100, le=100000)
    limit: int = Field(default=100, ge=1, le=1000)

    model_config = ConfigDict(str_strip_whitespace=True)

    @model_validator(mode="after")
    def require_city_or_coordinates(self) -> "OpenAQRequest":
        has_coordinates = self.latitude is not None and self.longitude is not None
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if not self.city and not has_coordinates:
            raise ValueError("Either city or latitude/longitude is required")
        return self

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


class MetricsRequest(BaseModel):
    """Request model for computing metrics over readings."""
    readings: List[Reading] = Field(..., max_length=20000)
    clean: Optional[Literal["linear", "forward_fill", "drop"]] = None


class AnalyzeRequest(BaseModel):
    """Request model for a full analysis."""
    readings: List[Reading] = Field(..., max_length=20000)
    source: SourceKind = SourceKind.MANUAL


class StatusResponse(BaseModel):
    """Response model for status endpoint."""
    status: str = Field(..., pattern="^(healthy|degraded)$")
    providers: List[dict]
    chain: List[str]
    candidate_count: int = Field(..., ge=0)


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Sensor Insight",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/status", response_model=StatusResponse)
@limiter.limit(RATE_LIMITS["status"])
async def get_status(
    request: Request,
    service: StatusService = Depends(get_status_service)
):
    """Get provider configuration and overall health."""
    return StatusResponse(**service.get_system_status())


@app.post("/sources/thingspeak")
@limiter.limit(RATE_LIMITS["ingest"])
async def ingest_thingspeak(
    request: Request,
    body: ThingSpeakRequest,
    service: IngestionService = Depends(get_ingestion_service)
):
    """Fetch a ThingSpeak channel and return canonical readings."""
    dataset = await service.ingest_thingspeak(
        body.channel_id,
        read_api_key=body.read_api_key,
        results=body.results,
        drop_empty=body.drop_empty
    )
    return dataset.model_dump(mode="json")


@app.post("/sources/openaq")
@limiter.limit(RATE_LIMITS["ingest"])
async def ingest_openaq(
    request: Request,
    body: OpenAQRequest,
    service: IngestionService = Depends(get_ingestion_service)
):
    """Fetch OpenAQ locations and return canonical readings."""
    dataset = await service.ingest_openaq(
        city=body.city,
        coordinates=body.coordinates,
        radius_m=body.radius_m,
        limit=body.limit
    )
    return dataset.model_dump(mode="json")


@app.post("/sources/spreadsheet")
@limiter.limit(RATE_LIMITS["ingest"])
async def ingest_spreadsheet(
    request: Request,
    file: UploadFile = File(...),
    drop_empty: bool = Form(False),
    service: IngestionService = Depends(get_ingestion_service)
):
    """Parse an uploaded CSV/TSV file and return canonical readings."""
    content = await file.read()
    dataset = service.ingest_spreadsheet(
        content,
        file.filename or "upload.csv",
        drop_empty=drop_empty
    )
    return dataset.model_dump(mode="json")


@app.post("/metrics")
@limiter.limit(RATE_LIMITS["metrics"])
async def metrics(
    request: Request,
    body: MetricsRequest,
    service: AnalysisService = Depends(get_analysis_service)
):
    """Summaries, health score, AQI category, statistics and peaks for readings."""
    result = service.series_report(body.readings, clean=body.clean)
    report = result["report"]
    response = {
        "metrics": {
            name: summary.model_dump()
            for name, summary in report.summaries.items()
        },
        "healthScore": report.health_score,
        "aqiCategory": report.aqi_category,
        "sampleCount": len(result["readings"]),
        "statistics": result["statistics"],
        "peaks": result["peaks"],
    }
    if body.clean:
        response["readings"] = [r.model_dump(mode="json") for r in result["readings"]]
    return response


@app.post("/analyze")
@limiter.limit(RATE_LIMITS["analyze"])
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    service: AnalysisService = Depends(get_analysis_service)
):
    """
    Compute metrics and generate an insight.

    Always answers with an insight: when every AI provider fails the local
    analyzer takes over.
    """
    return await service.analyze(body.readings, body.source)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower()
    )
