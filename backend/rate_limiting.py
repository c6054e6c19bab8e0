"""Rate limiting configuration for API endpoints."""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting.

    Prefers the first address in X-Forwarded-For when running behind a proxy.

    Args:
        request: FastAPI request object

    Returns:
        Client identifier (IP address)
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=["200/hour"],
    storage_uri="memory://",
    strategy="fixed-window",
)


# Rate limit configurations for different endpoint types
RATE_LIMITS = {
    # Each analysis may walk the whole provider chain
    "analyze": "20/minute",

    # Outbound fetches to ThingSpeak/OpenAQ and uploads
    "ingest": "30/minute",

    # Pure computation
    "metrics": "60/minute",

    # Read-only endpoints
    "status": "60/minute",
}
