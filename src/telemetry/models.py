"""Pydantic models for telemetry events.

PRIVACY: no model here has a field for raw notes or generated markdown.
Content is only ever described by lengths and counts.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.generation.models import Audience, Length, Tone

TELEMETRY_VERSION = "sug-v1"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorCategory(str, Enum):
    """Error categories for aggregation (never the message)."""

    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    PROVIDER = "provider"
    INTERNAL = "internal"


class RateLimitType(str, Enum):
    CLIENT = "ip"
    GLOBAL = "global"
    KILL_SWITCH = "kill_switch"


class SettingsMetrics(_CamelModel):
    audience: Audience
    length: Length
    tone: Tone


class RequestMetrics(_CamelModel):
    """Captured after input validation."""

    input_length: int
    meaningful_char_count: int
    settings: Optional[SettingsMetrics] = None


class TokenUsageMetrics(_CamelModel):
    input_tokens: int
    output_tokens: int


class PerformanceMetrics(_CamelModel):
    """Captured after the provider call. ``duration_ms`` covers the whole request."""

    duration_ms: Optional[int] = None
    token_budget: int = 0
    token_usage: Optional[TokenUsageMetrics] = None


class ValidationMetrics(_CamelModel):
    """Captured after structural validation; warning count only, never warning text."""

    metrics_detected: bool
    validation_warning_count: int


class OutcomeMetrics(_CamelModel):
    status_code: int
    error_code: Optional[str] = None
    output_length: int


class ErrorOutcomeMetrics(_CamelModel):
    status_code: int
    error_code: str
    error_category: ErrorCategory


class RateLimitMetrics(_CamelModel):
    was_rate_limited: bool = False
    remaining_requests: Optional[int] = None
    limit_type: Optional[RateLimitType] = None
    retry_after_seconds: Optional[int] = None


class ProviderInfo(_CamelModel):
    name: str
    model: Optional[str] = None


class TelemetryEventBase(_CamelModel):
    timestamp: datetime
    hashed_client_id: str
    request_id: str


class GenerateSuccessEvent(TelemetryEventBase):
    event: Literal["generate.success"] = "generate.success"
    request: RequestMetrics
    performance: PerformanceMetrics
    validation: ValidationMetrics
    outcome: OutcomeMetrics
    rate_limit: RateLimitMetrics
    provider: ProviderInfo


class GenerateErrorEvent(TelemetryEventBase):
    event: Literal["generate.error"] = "generate.error"
    request: Optional[RequestMetrics] = None
    performance: Optional[PerformanceMetrics] = None
    outcome: ErrorOutcomeMetrics
    rate_limit: RateLimitMetrics


class GenerateRateLimitedEvent(TelemetryEventBase):
    event: Literal["generate.rate_limited"] = "generate.rate_limited"
    rate_limit: RateLimitMetrics


TelemetryEvent = Union[GenerateSuccessEvent, GenerateErrorEvent, GenerateRateLimitedEvent]
