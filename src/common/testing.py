"""Testing helpers for unit and live runs."""

from __future__ import annotations

import asyncio
import os
from dataclasses import replace
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from src.common.config import (
    AppSettings,
    ConfigError,
    GeminiConfig,
    GuardrailConfig,
    TelemetryConfig,
    load_gemini_config,
)


def require_live_gemini() -> GeminiConfig:
    """Skip the test unless live Gemini credentials are configured."""
    if os.getenv("RUN_LIVE_TESTS") != "1":
        pytest.skip("Set RUN_LIVE_TESTS=1 to enable live integration tests.")
    try:
        config = load_gemini_config()
    except ConfigError as exc:
        pytest.skip(f"Live integration tests require valid configuration: {exc}")
    if not config.is_configured:
        pytest.skip(
            "Provide GEMINI_API_KEY, or GOOGLE_CLOUD_PROJECT with GEMINI_USE_VERTEXAI=true, "
            "to run live integration tests."
        )
    return config


def make_settings(
    *,
    generation_enabled: bool = True,
    rate_limit_per_ip: int = 10,
    rate_limit_window_ms: int = 600_000,
    rate_limit_global_daily: int = 500,
    max_input_chars: int = 20_000,
    max_output_chars: int = 30_000,
    trust_proxy_headers: bool = False,
    gemini: Optional[GeminiConfig] = None,
    **gemini_overrides: Any,
) -> AppSettings:
    """Build AppSettings for tests without touching the environment.

    The default Gemini config has no credentials, so the pipeline runs in
    stub mode unless a client is injected.
    """
    base_gemini = gemini or GeminiConfig(
        provider="gemini",
        model="gemini-test",
        api_key=None,
        use_vertexai=False,
        project=None,
        location="us-central1",
        timeout_ms=25_000,
        max_attempts=1,
    )
    return AppSettings(
        guardrails=GuardrailConfig(
            generation_enabled=generation_enabled,
            rate_limit_per_ip=rate_limit_per_ip,
            rate_limit_window_ms=rate_limit_window_ms,
            rate_limit_global_daily=rate_limit_global_daily,
            max_input_chars=max_input_chars,
            max_output_chars=max_output_chars,
            trust_proxy_headers=trust_proxy_headers,
        ),
        gemini=replace(base_gemini, **gemini_overrides),
        telemetry=TelemetryConfig(enabled=True, salt="test-salt"),
    )


class FakeClock:
    """Manually advanced clock for rate-limit tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_gemini_response(
    *segments: Optional[str],
    prompt_tokens: Optional[int] = 120,
    output_tokens: Optional[int] = 80,
    candidates: bool = True,
) -> SimpleNamespace:
    """Shape-compatible stand-in for a google-genai GenerateContentResponse."""
    parts = [SimpleNamespace(text=segment) for segment in segments]
    usage = None
    if prompt_tokens is not None or output_tokens is not None:
        usage = SimpleNamespace(prompt_token_count=prompt_tokens, candidates_token_count=output_tokens)
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))] if candidates else [],
        usage_metadata=usage,
    )


class FakeAsyncModels:
    """Replays queued results for ``client.aio.models.generate_content``.

    Queue items are either responses or exceptions to raise. ``delay``
    seconds are awaited before each call returns.
    """

    def __init__(self, *results: Any, delay: float = 0.0):
        self.results = list(results)
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate_content(self, *, model: str, contents: str, config: Any) -> Any:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeGenaiClient:
    """Minimal google-genai client exposing ``aio.models``."""

    def __init__(self, *results: Any, delay: float = 0.0):
        self.models = FakeAsyncModels(*results, delay=delay)
        self.aio = SimpleNamespace(models=self.models)


class RecordingSink:
    """Telemetry sink that keeps emitted payloads in memory."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def __call__(self, payload: Dict[str, Any]) -> None:
        self.events.append(payload)

    @property
    def event_names(self) -> List[str]:
        return [event["event"] for event in self.events]
