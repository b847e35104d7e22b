"""FastAPI service for weekly update generation.

Endpoints:
- POST /generate
- GET /health

Request handling order for POST /generate:
1. Guardrails (kill switch, per-client limit, global daily cap), before the
   body is read
2. JSON parsing and schema validation
3. Meaningful-content check
4. Generation pipeline
5. Exactly one telemetry event per request
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.common.config import AppSettings, load_app_settings
from src.common.env import load_env
from src.common.logging import get_logger, log_error
from src.common.pii import count_meaningful_chars
from src.generation.gemini_client import GeminiClient
from src.generation.models import ErrorResponse, GenerateRequest, ValidationIssue
from src.generation.pipeline import GenerationError, GenerationPipeline, ProviderNotSupported
from src.generation.signals import token_budget_for_length
from src.guardrails.gate import GuardrailGate
from src.guardrails.kill_switch import KillSwitch
from src.guardrails.rate_limit import RateLimiter
from src.telemetry.models import (
    ErrorCategory,
    OutcomeMetrics,
    PerformanceMetrics,
    ProviderInfo,
    RateLimitMetrics,
    RateLimitType,
    RequestMetrics,
    SettingsMetrics,
    TokenUsageMetrics,
    ValidationMetrics,
)
from src.telemetry.recorder import TelemetryRecorder, TelemetrySink

VERSION = "0.1.0"
MIN_MEANINGFUL_CHARS = 8

logger = get_logger(__name__)
router = APIRouter()


def client_identity(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Derive the client identity from the caller's network address.

    Proxy headers are caller-controlled unless a trusted proxy sits in front,
    so they are ignored by default. When trusted, the rightmost
    ``X-Forwarded-For`` hop (the one the proxy appended) is used.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            if hops:
                return hops[-1]
        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    issues: Optional[List[ValidationIssue]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=code, message=message, issues=issues)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True), headers=headers)


def _validation_issues(exc: ValidationError) -> List[ValidationIssue]:
    return [
        ValidationIssue(path=list(error.get("loc", ())), message=error.get("msg", "").removeprefix("Value error, "))
        for error in exc.errors()
    ]


def _error_category(exc: GenerationError) -> ErrorCategory:
    if isinstance(exc, ProviderNotSupported):
        return ErrorCategory.INTERNAL
    return ErrorCategory.PROVIDER


@router.post("/generate")
async def generate(request: Request):
    """Generate a weekly update from raw notes."""
    state = request.app.state
    settings: AppSettings = state.settings
    client_id = client_identity(request, trust_proxy_headers=settings.guardrails.trust_proxy_headers)
    recorder = TelemetryRecorder(
        client_id,
        salt=settings.telemetry.salt,
        enabled=settings.telemetry.enabled,
        sink=state.telemetry_sink,
    )

    decision = state.gate.check(client_id, request_id=recorder.request_id)
    if decision.rejection is not None:
        rejection = decision.rejection
        recorder.emit_rate_limited(RateLimitType(rejection.limit_type.value), rejection.retry_after_seconds)
        return _error_response(
            rejection.http_status,
            rejection.code,
            rejection.message,
            headers=rejection.headers or None,
        )
    recorder.set_rate_limit_metrics(RateLimitMetrics(was_rate_limited=False, remaining_requests=decision.remaining))

    try:
        body: Any = await request.json()
    except ValueError:
        recorder.emit_error(400, "invalid_json", ErrorCategory.VALIDATION)
        return _error_response(400, "invalid_json", "request body must be valid JSON")

    try:
        generate_request = GenerateRequest.model_validate(
            body,
            context={"max_input_chars": settings.guardrails.max_input_chars},
        )
    except ValidationError as exc:
        issues = _validation_issues(exc)
        recorder.emit_error(400, "invalid_request", ErrorCategory.VALIDATION)
        message = issues[0].message if issues else "invalid request"
        return _error_response(400, "invalid_request", message, issues=issues)

    meaningful_chars = count_meaningful_chars(generate_request.raw_input)
    recorder.set_request_metrics(
        RequestMetrics(
            input_length=len(generate_request.raw_input),
            meaningful_char_count=meaningful_chars,
            settings=SettingsMetrics(
                audience=generate_request.settings.audience,
                length=generate_request.settings.length,
                tone=generate_request.settings.tone,
            ),
        )
    )
    if meaningful_chars < MIN_MEANINGFUL_CHARS:
        recorder.emit_error(400, "input_too_short", ErrorCategory.VALIDATION)
        return _error_response(400, "input_too_short", "add a bit more detail to your notes before generating")

    token_budget = token_budget_for_length(generate_request.settings.length)
    try:
        outcome = await state.pipeline.run(generate_request, request_id=recorder.request_id)
    except GenerationError as exc:
        recorder.set_performance_metrics(PerformanceMetrics(token_budget=token_budget))
        recorder.emit_error(exc.status_code, exc.code, _error_category(exc))
        return _error_response(exc.status_code, exc.code, exc.message)
    except Exception as exc:
        log_error(logger, "generate_failed", request_id=recorder.request_id, error=exc)
        recorder.emit_error(500, "generation_failed", ErrorCategory.INTERNAL)
        return _error_response(500, "generation_failed", "generation failed")

    token_usage = None
    if outcome.meta is not None and outcome.meta.token_usage is not None:
        token_usage = TokenUsageMetrics(
            input_tokens=outcome.meta.token_usage.input_tokens,
            output_tokens=outcome.meta.token_usage.output_tokens,
        )
    recorder.set_performance_metrics(PerformanceMetrics(token_budget=outcome.token_budget, token_usage=token_usage))
    recorder.set_validation_metrics(
        ValidationMetrics(
            metrics_detected=outcome.quantitative_signal,
            validation_warning_count=len(outcome.warnings),
        )
    )
    recorder.emit_success(
        OutcomeMetrics(status_code=200, output_length=len(outcome.markdown)),
        ProviderInfo(
            name=outcome.meta.provider if outcome.meta else "unknown",
            model=outcome.meta.model if outcome.meta else None,
        ),
    )

    return JSONResponse(
        status_code=200,
        content=outcome.to_response().model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.get("/health")
def health(request: Request):
    """Health check with kill switch state, provider config, and limiter usage."""
    state = request.app.state
    return {
        "status": "ok",
        "version": VERSION,
        "generationEnabled": state.gate.kill_switch.is_enabled(),
        "provider": state.pipeline.provider_client.get_model_info(),
        "rateLimit": state.gate.rate_limiter.stats(),
    }


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    rate_limiter: Optional[RateLimiter] = None,
    kill_switch: Optional[KillSwitch] = None,
    pipeline: Optional[GenerationPipeline] = None,
    telemetry_sink: Optional[TelemetrySink] = None,
) -> FastAPI:
    """Build the API with explicitly constructed components.

    When ``settings`` is omitted they are loaded from the environment and
    the kill switch re-reads ``GENERATION_ENABLED`` on every request.
    Otherwise the kill switch follows ``settings.guardrails.generation_enabled``.
    """
    if settings is None:
        settings = load_app_settings()
        kill_switch = kill_switch or KillSwitch()
    else:
        guardrails = settings.guardrails
        kill_switch = kill_switch or KillSwitch(reader=lambda: guardrails.generation_enabled)

    rate_limiter = rate_limiter or RateLimiter(settings.guardrails)
    pipeline = pipeline or GenerationPipeline(
        provider_client=GeminiClient(settings.gemini),
        max_output_chars=settings.guardrails.max_output_chars,
        timeout_ms=settings.gemini.timeout_ms,
    )

    app = FastAPI(
        title="Updateforge Generate API",
        description="Turns raw weekly notes into stakeholder-ready Markdown updates.",
        version=VERSION,
    )
    app.state.settings = settings
    app.state.gate = GuardrailGate(kill_switch=kill_switch, rate_limiter=rate_limiter)
    app.state.pipeline = pipeline
    app.state.telemetry_sink = telemetry_sink
    app.include_router(router)
    return app


load_env()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8080,
        reload=True,
    )
