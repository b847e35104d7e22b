"""Orchestration of one weekly update generation.

Per request: signals -> provider invocation -> (live result | stub) ->
capping -> structural validation. The provider invocation step returns a
tagged ``ProviderOutcome`` so the stub fallback is an explicit branch rather
than an exception handler. Provider failures are re-tagged here, once, as
``GenerationError`` subclasses carrying the wire status and code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from src.common.config import DEFAULT_MAX_OUTPUT_CHARS, DEFAULT_PROVIDER_TIMEOUT_MS
from src.common.logging import get_logger, log_decision
from src.generation.gemini_client import (
    GeminiClient,
    ProviderClientError,
    ProviderMisconfiguredError,
    ProviderNotSupportedError,
    ProviderResponse,
    ProviderTimeoutError,
)
from src.generation.models import GenerateRequest, GenerationOutcome, ProviderMeta
from src.generation.prompt_templates import build_system_prompt, build_user_prompt
from src.generation.signals import detect_quantitative_content, token_budget_for_length
from src.generation.structure import EmptyOutputError, enforce_output_cap, validate_structure
from src.generation.stub import STUB_MODE_WARNING, build_stub_markdown

logger = get_logger(__name__)

GENERATION_TEMPERATURE = 0.2
STUB_PROVIDER_NAME = "stub"


class GenerationError(Exception):
    """Tagged pipeline failure with its wire status and code."""

    status_code: int = 500
    code: str = "generation_failed"
    message: str = "generation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ProviderTimeout(GenerationError):
    status_code = 504
    code = "provider_timeout"
    message = "generation timed out, please try again"


class ProviderError(GenerationError):
    status_code = 502
    code = "provider_error"
    message = "generation provider error, please try again"


class EmptyOutput(GenerationError):
    status_code = 502
    code = "empty_output"
    message = "generation failed"


class ProviderNotSupported(GenerationError):
    status_code = 500
    code = "provider_not_supported"
    message = "configured generation provider is not supported"


class ProviderOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    MISCONFIGURED = "misconfigured"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderOutcome:
    status: ProviderOutcomeStatus
    response: Optional[ProviderResponse] = None
    error: Optional[GenerationError] = None


def _retag(exc: ProviderClientError) -> GenerationError:
    if isinstance(exc, ProviderTimeoutError):
        return ProviderTimeout()
    if isinstance(exc, ProviderNotSupportedError):
        return ProviderNotSupported(str(exc))
    # ProviderUnreachableError, ProviderBadResponseError, and anything else
    # from the client are transient provider errors.
    return ProviderError()


class GenerationPipeline:
    """Generate a weekly update for one accepted request."""

    def __init__(
        self,
        *,
        provider_client: GeminiClient,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        timeout_ms: int = DEFAULT_PROVIDER_TIMEOUT_MS,
    ):
        self.provider_client = provider_client
        self.max_output_chars = max_output_chars
        self.timeout_ms = timeout_ms

    async def run(self, request: GenerateRequest, *, request_id: Optional[str] = None) -> GenerationOutcome:
        """Run the pipeline.

        Raises:
            ProviderTimeout, ProviderError, EmptyOutput, ProviderNotSupported
        """
        settings = request.settings
        quantitative_signal = detect_quantitative_content(request.raw_input)
        token_budget = token_budget_for_length(settings.length)

        provider_outcome = await self._invoke_provider(
            request,
            quantitative_signal=quantitative_signal,
            token_budget=token_budget,
        )

        if provider_outcome.status == ProviderOutcomeStatus.MISCONFIGURED:
            log_decision(logger, request_id=request_id, action="provider_fallback", outcome="stub")
            return self._build_stub_outcome(
                request,
                quantitative_signal=quantitative_signal,
                token_budget=token_budget,
            )

        if provider_outcome.status == ProviderOutcomeStatus.FAILED:
            error = provider_outcome.error or ProviderError()
            logger.warning(
                "generation_failed",
                extra={"event": "generation_failed", "request_id": request_id, "code": error.code},
            )
            raise error

        response = provider_outcome.response
        try:
            capped = enforce_output_cap(response.text, self.max_output_chars)
        except EmptyOutputError as exc:
            raise EmptyOutput() from exc

        structure_warnings = validate_structure(
            capped.markdown,
            settings.audience,
            quantitative_signal=quantitative_signal,
        )

        return GenerationOutcome(
            markdown=capped.markdown,
            warnings=[*capped.warnings, *structure_warnings],
            meta=ProviderMeta(
                provider=self.provider_client.config.provider,
                model=response.model,
                duration_ms=response.duration_ms,
                token_usage=response.token_usage,
            ),
            quantitative_signal=quantitative_signal,
            token_budget=token_budget,
        )

    async def _invoke_provider(
        self,
        request: GenerateRequest,
        *,
        quantitative_signal: bool,
        token_budget: int,
    ) -> ProviderOutcome:
        system = build_system_prompt()
        user = build_user_prompt(
            raw_input=request.raw_input,
            settings=request.settings,
            quantitative_signal=quantitative_signal,
        )
        try:
            response = await self.provider_client.generate(
                system=system,
                user=user,
                max_tokens=token_budget,
                temperature=GENERATION_TEMPERATURE,
                timeout_ms=self.timeout_ms,
            )
        except ProviderMisconfiguredError:
            return ProviderOutcome(status=ProviderOutcomeStatus.MISCONFIGURED)
        except ProviderClientError as exc:
            return ProviderOutcome(status=ProviderOutcomeStatus.FAILED, error=_retag(exc))
        return ProviderOutcome(status=ProviderOutcomeStatus.SUCCEEDED, response=response)

    def _build_stub_outcome(
        self,
        request: GenerateRequest,
        *,
        quantitative_signal: bool,
        token_budget: int,
    ) -> GenerationOutcome:
        capped = enforce_output_cap(build_stub_markdown(request), self.max_output_chars)
        structure_warnings = validate_structure(
            capped.markdown,
            request.settings.audience,
            quantitative_signal=quantitative_signal,
        )
        warnings: List[str] = [STUB_MODE_WARNING, *structure_warnings, *capped.warnings]
        return GenerationOutcome(
            markdown=capped.markdown,
            warnings=warnings,
            meta=ProviderMeta(provider=STUB_PROVIDER_NAME, duration_ms=0),
            quantitative_signal=quantitative_signal,
            token_budget=token_budget,
        )
