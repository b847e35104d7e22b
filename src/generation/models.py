"""Pydantic models and value objects for update generation.

Wire models (``GenerationSettings``, ``GenerateRequest``, ``GenerateResponse``)
use the camelCase field names of the public API. Internal results are
frozen dataclasses and never leave the process as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from src.common.config import DEFAULT_MAX_INPUT_CHARS

MIN_INPUT_CHARS = 10


class Audience(str, Enum):
    EXEC = "Exec"
    CROSS_FUNCTIONAL = "Cross-functional"
    ENGINEERING = "Engineering"


class Length(str, Enum):
    SHORT = "Short"
    STANDARD = "Standard"
    DETAILED = "Detailed"


class Tone(str, Enum):
    NEUTRAL = "Neutral"
    CRISP = "Crisp"
    FRIENDLY = "Friendly"


class GenerationSettings(BaseModel):
    """Audience, length, and tone selected for one update."""

    audience: Audience
    length: Length
    tone: Tone

    model_config = ConfigDict(frozen=True, extra="ignore")


class GenerateRequest(BaseModel):
    """Request body for POST /generate.

    ``rawInput`` is trimmed before length checks. The maximum length comes
    from the validation context key ``max_input_chars`` when provided.
    Unknown fields are dropped here and in ``settings``.
    """

    raw_input: str = Field(..., alias="rawInput")
    settings: GenerationSettings

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("raw_input")
    @classmethod
    def _check_raw_input(cls, value: str, info: ValidationInfo) -> str:
        trimmed = value.strip()
        max_chars = DEFAULT_MAX_INPUT_CHARS
        if info.context and info.context.get("max_input_chars"):
            max_chars = int(info.context["max_input_chars"])
        if len(trimmed) < MIN_INPUT_CHARS:
            raise ValueError("rawInput is too short")
        if len(trimmed) > max_chars:
            raise ValueError("rawInput is too long")
        return trimmed


class ResponseMeta(BaseModel):
    provider: str
    model: Optional[str] = None
    duration_ms: int = Field(..., alias="durationMs", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class GenerateResponse(BaseModel):
    """Success body for POST /generate."""

    markdown: str
    warnings: Optional[List[str]] = None
    meta: Optional[ResponseMeta] = None

    model_config = ConfigDict(populate_by_name=True)


class ValidationIssue(BaseModel):
    path: List[Any]
    message: str


class ErrorResponse(BaseModel):
    """Error body shared by every non-200 response."""

    error: str
    message: str
    issues: Optional[List[ValidationIssue]] = None


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class ProviderMeta:
    provider: str
    duration_ms: int
    model: Optional[str] = None
    token_usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of one pipeline run.

    ``quantitative_signal`` and ``token_budget`` are diagnostics for
    telemetry and are not part of the wire response.
    """

    markdown: str
    warnings: List[str] = field(default_factory=list)
    meta: Optional[ProviderMeta] = None
    quantitative_signal: bool = False
    token_budget: int = 0

    def to_response(self) -> GenerateResponse:
        meta = None
        if self.meta is not None:
            meta = ResponseMeta(provider=self.meta.provider, model=self.meta.model, durationMs=self.meta.duration_ms)
        return GenerateResponse(
            markdown=self.markdown,
            warnings=list(self.warnings) if self.warnings else None,
            meta=meta,
        )
