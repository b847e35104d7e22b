"""Gemini client wrapper for weekly update generation using google-genai SDK.

Every call runs under a hard wall-clock deadline. Failures are classified so
callers can tell a deadline overrun from a provider error:

- ProviderMisconfiguredError: no credentials; raised before any network I/O
- ProviderNotSupportedError: LLM_PROVIDER names a provider we do not ship
- ProviderTimeoutError: the deadline passed (the in-flight call is cancelled)
- ProviderUnreachableError: transport failure (retried inside the deadline)
- ProviderBadResponseError: non-2xx status or a response without text parts
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.common.config import GeminiConfig
from src.common.logging import get_logger
from src.generation.models import TokenUsage

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = {"gemini"}


class ProviderClientError(Exception):
    """Base exception for provider client errors."""


class ProviderMisconfiguredError(ProviderClientError):
    """The provider has no usable credentials."""


class ProviderNotSupportedError(ProviderClientError):
    """The configured provider name is not supported."""


class ProviderTimeoutError(ProviderClientError):
    """The call did not finish before its deadline."""


class ProviderUnreachableError(ProviderClientError):
    """Transport-level failure reaching the provider."""


class ProviderBadResponseError(ProviderClientError):
    """The provider answered with an error status or without usable text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ProviderResponse:
    """Structured response from one generation call."""

    text: str
    model: str
    duration_ms: int
    token_usage: Optional[TokenUsage] = None


def _extract_text(response: Any) -> str:
    """Concatenate all text parts of the first candidate and trim.

    Raises:
        ProviderBadResponseError: If the response holds no text parts at all.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise ProviderBadResponseError("provider response had no candidates")

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    segments = [part.text for part in parts if isinstance(getattr(part, "text", None), str)]
    if not segments:
        raise ProviderBadResponseError("provider response had no text content")

    return "".join(segments).strip()


def _extract_token_usage(response: Any) -> Optional[TokenUsage]:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return None
    input_tokens = getattr(usage, "prompt_token_count", None)
    output_tokens = getattr(usage, "candidates_token_count", None)
    if input_tokens is None and output_tokens is None:
        return None
    return TokenUsage(input_tokens=input_tokens or 0, output_tokens=output_tokens or 0)


class GeminiClient:
    """Client for calling Gemini via google-genai SDK."""

    def __init__(self, config: GeminiConfig, *, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self.config.provider not in SUPPORTED_PROVIDERS:
            raise ProviderNotSupportedError(f"unsupported llm provider: {self.config.provider}")
        if self._client is not None:
            return self._client
        if not self.config.is_configured:
            raise ProviderMisconfiguredError("generation provider is not configured")

        http_options = types.HttpOptions(timeout=self.config.timeout_ms)
        try:
            if self.config.api_key:
                self._client = genai.Client(api_key=self.config.api_key, http_options=http_options)
            else:
                self._client = genai.Client(
                    vertexai=True,
                    project=self.config.project,
                    location=self.config.location,
                    http_options=http_options,
                )
        except Exception as exc:
            raise ProviderMisconfiguredError(f"Failed to initialize Gemini client: {exc}") from exc
        return self._client

    async def generate(
        self,
        *,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float,
        timeout_ms: int,
    ) -> ProviderResponse:
        """Generate text with a hard deadline.

        Args:
            system: System instruction.
            user: User payload (contains the raw notes as data).
            max_tokens: Output token budget.
            temperature: Sampling temperature.
            timeout_ms: Wall-clock deadline for the whole call, retries included.

        Returns:
            ProviderResponse with the trimmed text (possibly empty).

        Raises:
            ProviderMisconfiguredError, ProviderNotSupportedError,
            ProviderTimeoutError, ProviderUnreachableError, ProviderBadResponseError
        """
        client = self._get_client()
        started = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._generate_with_retries(
                    client,
                    system=system,
                    user=user,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(f"provider call exceeded {timeout_ms}ms deadline") from exc

        text = _extract_text(response)
        duration_ms = int((time.monotonic() - started) * 1000)
        return ProviderResponse(
            text=text,
            model=self.config.model,
            duration_ms=duration_ms,
            token_usage=_extract_token_usage(response),
        )

    async def _generate_with_retries(self, client, **kwargs: Any):
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ProviderUnreachableError),
            stop=stop_after_attempt(max(1, self.config.max_attempts)),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        ):
            with attempt:
                return await self._call_once(client, **kwargs)

    async def _call_once(self, client, *, system: str, user: str, max_tokens: int, temperature: float):
        config = types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=max_tokens,
            temperature=temperature,
        )
        try:
            return await client.aio.models.generate_content(
                model=self.config.model,
                contents=user,
                config=config,
            )
        except genai_errors.APIError as exc:
            logger.warning(
                "provider_error_status",
                extra={"event": "provider_error_status", "status_code": exc.code, "model": self.config.model},
            )
            raise ProviderBadResponseError(f"provider returned status {exc.code}", status_code=exc.code) from exc
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"provider transport timed out: {exc}") from exc
        except (httpx.TransportError, OSError) as exc:
            logger.warning(
                "provider_unreachable",
                extra={"event": "provider_unreachable", "error_type": type(exc).__name__, "model": self.config.model},
            )
            raise ProviderUnreachableError(f"provider unreachable: {exc}") from exc

    def get_model_info(self) -> Dict[str, Any]:
        """Return model configuration for health/debugging."""
        return {
            "provider": self.config.provider,
            "model": self.config.model,
            "configured": self.config.is_configured,
            "location": self.config.location if self.config.use_vertexai else None,
            "timeoutMs": self.config.timeout_ms,
        }
