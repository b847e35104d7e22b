"""Configuration loader for Updateforge services.

Provides shared configuration dataclasses and environment variable helpers
used by the guardrails, generation pipeline, telemetry, and API layers.

All service configurations are centralized here to avoid duplication.

Exports:
    - ConfigError: Exception for configuration errors
    - _get_env, _int_env, _bool_env, _optional_env: Environment helpers
    - GuardrailConfig, GeminiConfig, TelemetryConfig: Component configurations
    - AppSettings: Combined settings for the generate API
    - load_guardrail_config, load_gemini_config, load_telemetry_config
    - load_app_settings: Load everything from environment
    - generation_enabled: Read the kill switch flag at call time
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    value = os.getenv(key, default)
    if required and (value is None or value == ""):
        raise ConfigError(f"Missing required environment variable: {key}")
    if value is None:
        raise ConfigError(f"Environment variable {key} is not set and no default provided")
    if value == "" and default is None:
        raise ConfigError(f"Environment variable {key} is empty and no default provided")
    return value


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid int for {key}: {raw}") from exc


def _bool_env(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid bool for {key}: {raw}")


def _optional_env(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None or value == "":
        return None
    return value


# Default values for guardrails
DEFAULT_RATE_LIMIT_PER_IP = 10
DEFAULT_RATE_LIMIT_WINDOW_MS = 600_000  # 10 minutes
DEFAULT_RATE_LIMIT_GLOBAL_DAILY = 500
DEFAULT_MAX_INPUT_CHARS = 20_000
DEFAULT_MAX_OUTPUT_CHARS = 30_000

# Default values for Gemini configuration
DEFAULT_LLM_PROVIDER = "gemini"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_VERTEX_AI_LOCATION = "us-central1"
DEFAULT_PROVIDER_TIMEOUT_MS = 25_000
DEFAULT_GEMINI_MAX_ATTEMPTS = 2

DEFAULT_TELEMETRY_SALT = "sug-telemetry-v1"


@dataclass
class GuardrailConfig:
    """Kill switch, rate limits, and input/output caps.

    ``trust_proxy_headers`` is only safe behind a reverse proxy that appends
    the caller address to ``X-Forwarded-For``.
    """

    generation_enabled: bool
    rate_limit_per_ip: int
    rate_limit_window_ms: int
    rate_limit_global_daily: int
    max_input_chars: int
    max_output_chars: int
    trust_proxy_headers: bool = False


@dataclass
class GeminiConfig:
    """Gemini provider configuration for update generation.

    Either ``api_key`` (Gemini Developer API) or ``use_vertexai`` with a
    ``project`` (Vertex AI) must be present for the provider to be usable.
    When neither is set the pipeline runs in stub mode.
    """

    provider: str
    model: str
    api_key: Optional[str]
    use_vertexai: bool
    project: Optional[str]
    location: str
    timeout_ms: int
    max_attempts: int

    @property
    def is_configured(self) -> bool:
        if self.api_key:
            return True
        return self.use_vertexai and bool(self.project)


@dataclass
class TelemetryConfig:
    enabled: bool
    salt: str


@dataclass
class AppSettings:
    """Combined settings for the generate API."""

    guardrails: GuardrailConfig
    gemini: GeminiConfig
    telemetry: TelemetryConfig


def generation_enabled() -> bool:
    """Read the kill switch flag from the environment.

    Called on every request so the flag can be flipped without a restart.
    Never raises: only an explicit false value (false/0/no/off) disables
    generation, anything else leaves it enabled.
    """
    raw = os.getenv("GENERATION_ENABLED")
    if raw is None:
        return True
    return raw.strip().lower() not in _FALSE_VALUES


def load_guardrail_config() -> GuardrailConfig:
    """Load guardrail configuration from environment variables."""
    return GuardrailConfig(
        generation_enabled=_bool_env("GENERATION_ENABLED", default=True),
        rate_limit_per_ip=_int_env("RATE_LIMIT_PER_IP", default=DEFAULT_RATE_LIMIT_PER_IP),
        rate_limit_window_ms=_int_env("RATE_LIMIT_WINDOW_MS", default=DEFAULT_RATE_LIMIT_WINDOW_MS),
        rate_limit_global_daily=_int_env("RATE_LIMIT_GLOBAL_DAILY", default=DEFAULT_RATE_LIMIT_GLOBAL_DAILY),
        max_input_chars=_int_env("MAX_INPUT_CHARS", default=DEFAULT_MAX_INPUT_CHARS),
        max_output_chars=_int_env("MAX_OUTPUT_CHARS", default=DEFAULT_MAX_OUTPUT_CHARS),
        trust_proxy_headers=_bool_env("TRUST_PROXY_HEADERS", default=False),
    )


def load_gemini_config() -> GeminiConfig:
    """Load Gemini configuration from environment variables.

    Returns:
        GeminiConfig with credentials, model, and call limits.
    """
    return GeminiConfig(
        provider=_get_env("LLM_PROVIDER", default=DEFAULT_LLM_PROVIDER).strip().lower(),
        model=_get_env("GEMINI_MODEL", default=DEFAULT_GEMINI_MODEL),
        api_key=_optional_env("GEMINI_API_KEY"),
        use_vertexai=_bool_env("GEMINI_USE_VERTEXAI", default=False),
        project=_optional_env("GOOGLE_CLOUD_PROJECT"),
        location=_get_env("VERTEX_AI_LOCATION", default=DEFAULT_VERTEX_AI_LOCATION),
        timeout_ms=_int_env("PROVIDER_TIMEOUT_MS", default=DEFAULT_PROVIDER_TIMEOUT_MS),
        max_attempts=_int_env("GEMINI_MAX_ATTEMPTS", default=DEFAULT_GEMINI_MAX_ATTEMPTS),
    )


def load_telemetry_config() -> TelemetryConfig:
    return TelemetryConfig(
        enabled=_bool_env("TELEMETRY_ENABLED", default=True),
        salt=_get_env("TELEMETRY_SALT", default=DEFAULT_TELEMETRY_SALT),
    )


def load_app_settings() -> AppSettings:
    """Load generate API settings from environment variables.

    Raises:
        ConfigError: If environment variables are present but invalid.
    """
    return AppSettings(
        guardrails=load_guardrail_config(),
        gemini=load_gemini_config(),
        telemetry=load_telemetry_config(),
    )
