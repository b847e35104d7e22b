"""Per-request telemetry accumulator.

A recorder is created when a request arrives, fed as the request moves
through validation, generation, and structural checks, and flushed exactly
once with one of three terminal events: success, error, or rate-limited.

Emission is isolated from the request: any failure while building or
writing an event is logged as ``telemetry.error`` and swallowed.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from src.common.logging import get_logger, log_telemetry
from src.common.pii import hash_client_id
from src.telemetry.models import (
    TELEMETRY_VERSION,
    ErrorCategory,
    ErrorOutcomeMetrics,
    GenerateErrorEvent,
    GenerateRateLimitedEvent,
    GenerateSuccessEvent,
    OutcomeMetrics,
    PerformanceMetrics,
    ProviderInfo,
    RateLimitMetrics,
    RateLimitType,
    RequestMetrics,
    TelemetryEvent,
    ValidationMetrics,
)

logger = get_logger("updateforge.telemetry")

TelemetrySink = Callable[[Dict[str, Any]], None]


def generate_request_id() -> str:
    """Request id for log correlation: ``<epoch ms>-<6 hex chars>``."""
    return f"{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def log_event_sink(payload: Dict[str, Any]) -> None:
    """Default sink: one JSON log line per event."""
    log_telemetry(logger, payload)


class TelemetryRecorder:
    """Accumulates privacy-safe metrics for one request."""

    def __init__(
        self,
        client_id: str,
        *,
        salt: str,
        enabled: bool = True,
        sink: Optional[TelemetrySink] = None,
    ):
        self.request_id = generate_request_id()
        self.hashed_client_id = hash_client_id(client_id, salt)
        self.enabled = enabled
        self._sink = sink or log_event_sink
        self._started = time.monotonic()
        self._emitted = False

        self.request_metrics: Optional[RequestMetrics] = None
        self.performance_metrics: Optional[PerformanceMetrics] = None
        self.validation_metrics: Optional[ValidationMetrics] = None
        self.rate_limit_metrics = RateLimitMetrics(was_rate_limited=False)

    @property
    def emitted(self) -> bool:
        return self._emitted

    def set_request_metrics(self, metrics: RequestMetrics) -> None:
        self.request_metrics = metrics

    def set_performance_metrics(self, metrics: PerformanceMetrics) -> None:
        self.performance_metrics = metrics

    def set_validation_metrics(self, metrics: ValidationMetrics) -> None:
        self.validation_metrics = metrics

    def set_rate_limit_metrics(self, metrics: RateLimitMetrics) -> None:
        self.rate_limit_metrics = metrics

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def emit_success(self, outcome: OutcomeMetrics, provider: ProviderInfo) -> None:
        """Emit ``generate.success``. Request and validation metrics must be set."""

        def build() -> TelemetryEvent:
            performance = self.performance_metrics or PerformanceMetrics()
            return GenerateSuccessEvent(
                timestamp=self._now(),
                hashed_client_id=self.hashed_client_id,
                request_id=self.request_id,
                request=self.request_metrics,
                performance=performance.model_copy(update={"duration_ms": self._elapsed_ms()}),
                validation=self.validation_metrics,
                outcome=outcome,
                rate_limit=self.rate_limit_metrics,
                provider=provider,
            )

        self._emit(build, context="emit_success")

    def emit_error(self, status_code: int, error_code: str, error_category: ErrorCategory) -> None:
        def build() -> TelemetryEvent:
            performance = None
            if self.performance_metrics is not None:
                performance = self.performance_metrics.model_copy(update={"duration_ms": self._elapsed_ms()})
            return GenerateErrorEvent(
                timestamp=self._now(),
                hashed_client_id=self.hashed_client_id,
                request_id=self.request_id,
                request=self.request_metrics,
                performance=performance,
                outcome=ErrorOutcomeMetrics(
                    status_code=status_code,
                    error_code=error_code,
                    error_category=error_category,
                ),
                rate_limit=self.rate_limit_metrics,
            )

        self._emit(build, context="emit_error")

    def emit_rate_limited(self, limit_type: RateLimitType, retry_after_seconds: Optional[int] = None) -> None:
        """Emit ``generate.rate_limited`` for requests rejected by the guardrails."""

        def build() -> TelemetryEvent:
            return GenerateRateLimitedEvent(
                timestamp=self._now(),
                hashed_client_id=self.hashed_client_id,
                request_id=self.request_id,
                rate_limit=RateLimitMetrics(
                    was_rate_limited=True,
                    limit_type=limit_type,
                    retry_after_seconds=retry_after_seconds,
                ),
            )

        self._emit(build, context="emit_rate_limited")

    def _emit(self, build: Callable[[], TelemetryEvent], *, context: str) -> None:
        if not self.enabled:
            return
        if self._emitted:
            logger.warning(
                "telemetry_already_emitted",
                extra={"event": "telemetry.duplicate", "request_id": self.request_id, "context": context},
            )
            return
        self._emitted = True

        try:
            event = build()
            payload = event.model_dump(mode="json", by_alias=True, exclude_none=True)
            payload["_telemetry"] = TELEMETRY_VERSION
            self._sink(payload)
        except Exception as exc:
            logger.error(
                "telemetry_error",
                extra={
                    "event": "telemetry.error",
                    "_telemetry": TELEMETRY_VERSION,
                    "request_id": self.request_id,
                    "context": context,
                    "error": str(exc),
                },
            )
