"""AI provider adapters behind a uniform generate() call."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import anthropic
import httpx

from exceptions import (
    ConfigurationError,
    InvalidResponseError,
    ProviderError,
    QuotaExceededError,
)
from logging_config import get_logger

logger = get_logger("llm.providers")

RATE_LIMIT_MARKERS = ("quota", "429", "rate limit", "rate_limit", "resource_exhausted")

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}


def is_rate_limit_message(message: str) -> bool:
    """Whether an error message reads like a quota or rate limit."""
    lower = (message or "").lower()
    return any(marker in lower for marker in RATE_LIMIT_MARKERS)


class InsightProvider(ABC):
    """One AI backend that turns a prompt into response text."""

    name: str = ""

    @abstractmethod
    async def generate(self, prompt: str, api_key: str, model: str, timeout: float) -> str:
        """
        Send a prompt and return the raw response text.

        Raises:
            QuotaExceededError: Credential hit a rate or usage limit
            InvalidResponseError: Response body had an unexpected shape
            ProviderError: Any other failure
        """


class HttpInsightProvider(InsightProvider):
    """Shared httpx plumbing for JSON-over-HTTP providers."""

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or error)
        if error:
            return str(error)
        return response.text[:200]

    async def _post(
        self,
        timeout: float,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        try:
            async with self._client(timeout) as client:
                response = await client.post(url, json=payload, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name)

        if response.status_code >= 400:
            message = self._error_message(response)
            if response.status_code == 429 or is_rate_limit_message(message):
                raise QuotaExceededError(
                    f"{self.name} quota exceeded: {message}",
                    provider=self.name,
                    status=response.status_code
                )
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}: {message}",
                provider=self.name,
                status=response.status_code
            )

        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError(
                f"{self.name} returned a non-JSON body",
                provider=self.name,
                status=response.status_code
            )


class GeminiProvider(HttpInsightProvider):
    """Google Gemini generateContent API."""

    name = "gemini"

    async def generate(self, prompt: str, api_key: str, model: str, timeout: float) -> str:
        body = await self._post(
            timeout,
            f"{self.base_url}/models/{model}:generateContent",
            payload={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": GENERATION_CONFIG,
            },
            params={"key": api_key}
        )

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise InvalidResponseError(
                "Invalid Gemini API response structure",
                provider=self.name
            )
        if not isinstance(text, str):
            raise InvalidResponseError("Gemini response text is not a string", provider=self.name)
        return text


class GroqProvider(HttpInsightProvider):
    """Groq OpenAI-compatible chat completions API."""

    name = "groq"

    async def generate(self, prompt: str, api_key: str, model: str, timeout: float) -> str:
        body = await self._post(
            timeout,
            f"{self.base_url}/chat/completions",
            payload={
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": GENERATION_CONFIG["temperature"],
                "max_tokens": GENERATION_CONFIG["maxOutputTokens"],
                "response_format": {"type": "json_object"},
            },
            headers={"Authorization": f"Bearer {api_key}"}
        )

        try:
            text = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise InvalidResponseError(
                "Invalid Groq API response structure",
                provider=self.name
            )
        if not isinstance(text, str):
            raise InvalidResponseError("Groq response content is not a string", provider=self.name)
        return text


class AnthropicProvider(InsightProvider):
    """Anthropic Messages API through the official SDK."""

    name = "anthropic"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def _client(self, api_key: str, timeout: float) -> anthropic.AsyncAnthropic:
        # the SDK closes the http client with itself, so build one per call
        http_client = None
        if self.transport is not None:
            http_client = httpx.AsyncClient(timeout=timeout, transport=self.transport)
        return anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
            http_client=http_client
        )

    async def generate(self, prompt: str, api_key: str, model: str, timeout: float) -> str:
        client = self._client(api_key, timeout)

        try:
            response = await client.messages.create(
                model=model,
                max_tokens=GENERATION_CONFIG["maxOutputTokens"],
                messages=[{"role": "user", "content": prompt}]
            )
        except anthropic.RateLimitError as e:
            raise QuotaExceededError(
                f"anthropic quota exceeded: {e}",
                provider=self.name,
                status=429
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"anthropic returned HTTP {e.status_code}: {e.message}",
                provider=self.name,
                status=e.status_code
            )
        except anthropic.APIError as e:
            raise ProviderError(f"anthropic request failed: {e}", provider=self.name)
        finally:
            await client.close()

        text = "\n".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise InvalidResponseError("Anthropic response has no text content", provider=self.name)
        return text


def build_provider(name: str, settings) -> InsightProvider:
    """
    Instantiate a provider by name.

    Args:
        name: ``gemini``, ``groq`` or ``anthropic``
        settings: Application settings with provider base URLs

    Raises:
        ConfigurationError: If the provider name is unknown
    """
    if name == "gemini":
        return GeminiProvider(settings.gemini_base_url)
    if name == "groq":
        return GroqProvider(settings.groq_base_url)
    if name == "anthropic":
        return AnthropicProvider()

    raise ConfigurationError(
        f"Unknown AI provider: {name}",
        details={"supported": ["gemini", "groq", "anthropic"]}
    )
