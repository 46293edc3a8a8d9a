"""
Model clients for the agent pipeline.

One client per provider behind a common async interface:

    client = create_client(target, timeout=120.0)
    text = await client.generate(GenerationRequest(system_prompt, user_prompt, 0.2))

Every failure surfaces as a ModelError whose kind drives whether the user
is offered a retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

import httpx

from docflow.errors import ModelError, ModelErrorKind

from .agents import ModelTarget

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 120.0

GOOGLE_API_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENROUTER_API_URL = "https://openrouter.ai/api/v1"


@dataclass(frozen=True)
class GenerationRequest:
    """A single prompt for a model call."""

    system_prompt: str
    user_prompt: str
    temperature: float


@runtime_checkable
class ModelClient(Protocol):
    """Protocol for provider clients."""

    provider: str

    async def generate(self, request: GenerationRequest) -> str: ...

    async def aclose(self) -> None: ...


def classify_status(status_code: int, message: str = "") -> ModelErrorKind:
    """Map an HTTP status (and error text) to a ModelErrorKind."""
    lowered = message.lower()
    if status_code == 429 or "quota" in lowered or "rate limit" in lowered:
        return ModelErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ModelErrorKind.UNAUTHORIZED
    if status_code == 404:
        return ModelErrorKind.NOT_FOUND
    if status_code >= 500:
        return ModelErrorKind.SERVICE_UNAVAILABLE
    if "api key" in lowered:
        return ModelErrorKind.UNAUTHORIZED
    return ModelErrorKind.UNKNOWN


def _error_message(response: httpx.Response) -> str:
    """Pull a readable message out of a provider error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return response.text or response.reason_phrase


class HTTPModelClient:
    """Shared plumbing for providers reached over HTTPS with httpx."""

    provider = "http"
    base_url = ""

    def __init__(
        self,
        target: ModelTarget,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.target = target
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url or self.base_url,
            headers=self.headers(),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_request(self, request: GenerationRequest) -> tuple[str, dict]:
        raise NotImplementedError

    def parse_response(self, data: dict) -> str:
        raise NotImplementedError

    def classify(self, response: httpx.Response, message: str) -> ModelErrorKind:
        return classify_status(response.status_code, message)

    async def generate(self, request: GenerationRequest) -> str:
        path, payload = self.build_request(request)
        logger.debug("%s request to %s (%d chars)", self.provider, path, len(request.user_prompt))

        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise ModelError(
                f"{self.provider} request timed out after {self.timeout:.0f}s",
                ModelErrorKind.NETWORK_ERROR,
                provider=self.provider,
            ) from e
        except httpx.TransportError as e:
            raise ModelError(
                f"{self.provider} connection failed: {e}",
                ModelErrorKind.NETWORK_ERROR,
                provider=self.provider,
            ) from e

        if response.is_error:
            message = _error_message(response)
            kind = self.classify(response, message)
            logger.warning(
                "%s API error %d (%s): %s", self.provider, response.status_code, kind.value, message
            )
            raise ModelError(
                f"{self.provider} API error {response.status_code}: {message}",
                kind,
                status_code=response.status_code,
                provider=self.provider,
            )

        try:
            return self.parse_response(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ModelError(
                f"Unexpected {self.provider} response: {e}",
                ModelErrorKind.UNKNOWN,
                status_code=response.status_code,
                provider=self.provider,
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()


class GoogleClient(HTTPModelClient):
    """Client for Google Gemini models (generateContent REST API)."""

    provider = "google"
    base_url = GOOGLE_API_URL

    def headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self.target.api_key,
            "Content-Type": "application/json",
        }

    def build_request(self, request: GenerationRequest) -> tuple[str, dict]:
        model = self.target.model.removeprefix("models/")
        return f"/models/{model}:generateContent", {
            "systemInstruction": {"parts": [{"text": request.system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
            "generationConfig": {"temperature": request.temperature},
        }

    def parse_response(self, data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise ValueError(f"empty response ({reason})")
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)


class OpenRouterClient(HTTPModelClient):
    """Client for OpenRouter (OpenAI-compatible chat completions)."""

    provider = "openrouter"
    base_url = OPENROUTER_API_URL

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.target.api_key}",
            "X-Title": "docflow",
            "Content-Type": "application/json",
        }

    def build_request(self, request: GenerationRequest) -> tuple[str, dict]:
        return "/chat/completions", {
            "model": self.target.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
        }

    def parse_response(self, data: dict) -> str:
        content = data["choices"][0]["message"]["content"]
        return content or ""

    def classify(self, response: httpx.Response, message: str) -> ModelErrorKind:
        if "is not a valid model id" in message.lower():
            return ModelErrorKind.NOT_FOUND
        return super().classify(response, message)


class OllamaClient:
    """Client for a local Ollama server."""

    provider = "ollama"

    def __init__(self, target: ModelTarget, *, timeout: float = DEFAULT_TIMEOUT, host: str | None = None):
        from ollama import AsyncClient

        self.target = target
        self._client = AsyncClient(host=host, timeout=timeout)

    async def generate(self, request: GenerationRequest) -> str:
        import ollama

        try:
            response = await self._client.chat(
                model=self.target.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                options={"temperature": request.temperature},
            )
        except ollama.ResponseError as e:
            raise ModelError(
                f"Ollama error: {e.error}",
                classify_status(e.status_code, e.error),
                status_code=e.status_code,
                provider=self.provider,
            ) from e
        except (httpx.TransportError, ConnectionError) as e:
            raise ModelError(
                f"Ollama not reachable: {e}. Ensure Ollama is running: ollama serve",
                ModelErrorKind.NETWORK_ERROR,
                provider=self.provider,
            ) from e

        return response.message.content or ""

    async def aclose(self) -> None:
        pass


# -----------------------------------------------------------------------------
# Provider registry
# -----------------------------------------------------------------------------

ClientFactory = Callable[..., ModelClient]

_PROVIDERS: dict[str, ClientFactory] = {
    "google": GoogleClient,
    "openrouter": OpenRouterClient,
    "ollama": OllamaClient,
}


def register_provider(name: str, factory: ClientFactory) -> None:
    """Register (or replace) the client factory for a provider name."""
    _PROVIDERS[name] = factory


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def is_known_provider(name: str) -> bool:
    return name in _PROVIDERS


def create_client(target: ModelTarget, *, timeout: float = DEFAULT_TIMEOUT) -> ModelClient:
    """
    Build the client for a model target.

    Raises:
        ValueError: If the provider is not registered
    """
    try:
        factory = _PROVIDERS[target.provider]
    except KeyError:
        raise ValueError(
            f"Unknown provider '{target.provider}'. Available: {', '.join(available_providers())}"
        ) from None
    return factory(target, timeout=timeout)
