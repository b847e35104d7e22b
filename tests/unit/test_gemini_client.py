"""Unit tests for the Gemini provider client.

The google-genai client is replaced by a fake exposing ``aio.models`` so
no network calls are made.
"""

import asyncio

import httpx
import pytest
from google.genai import errors as genai_errors

from src.common.testing import FakeGenaiClient, fake_gemini_response, make_settings
from src.generation.gemini_client import (
    GeminiClient,
    ProviderBadResponseError,
    ProviderMisconfiguredError,
    ProviderNotSupportedError,
    ProviderTimeoutError,
    ProviderUnreachableError,
)
from src.generation.models import TokenUsage


def _client(fake=None, **overrides) -> GeminiClient:
    config = make_settings(**overrides).gemini
    return GeminiClient(config, client=fake)


def _generate(client: GeminiClient, timeout_ms: int = 5_000):
    return asyncio.run(
        client.generate(system="sys", user="notes", max_tokens=450, temperature=0.2, timeout_ms=timeout_ms)
    )


def test_concatenates_and_trims_text_segments():
    fake = FakeGenaiClient(fake_gemini_response("  ## Summary\n", "- shipped it  "))

    response = _generate(_client(fake))

    assert response.text == "## Summary\n- shipped it"
    assert response.model == "gemini-test"
    assert response.token_usage == TokenUsage(input_tokens=120, output_tokens=80)
    assert response.duration_ms >= 0


def test_passes_budget_and_system_instruction():
    fake = FakeGenaiClient(fake_gemini_response("ok"))

    _generate(_client(fake))

    call = fake.models.calls[0]
    assert call["model"] == "gemini-test"
    assert call["contents"] == "notes"
    assert call["config"].max_output_tokens == 450
    assert call["config"].temperature == 0.2
    assert call["config"].system_instruction == "sys"


def test_whitespace_only_text_is_reported_as_empty_string():
    fake = FakeGenaiClient(fake_gemini_response("   ", "\n"))
    assert _generate(_client(fake)).text == ""


def test_missing_token_usage_is_none():
    fake = FakeGenaiClient(fake_gemini_response("ok", prompt_tokens=None, output_tokens=None))
    assert _generate(_client(fake)).token_usage is None


def test_response_without_text_parts_is_bad_response():
    fake = FakeGenaiClient(fake_gemini_response(None))
    with pytest.raises(ProviderBadResponseError):
        _generate(_client(fake))


def test_response_without_candidates_is_bad_response():
    fake = FakeGenaiClient(fake_gemini_response(candidates=False))
    with pytest.raises(ProviderBadResponseError):
        _generate(_client(fake))


def test_api_error_status_is_bad_response():
    error = genai_errors.ServerError(503, {"error": {"code": 503, "message": "unavailable", "status": "UNAVAILABLE"}})
    fake = FakeGenaiClient(error)

    with pytest.raises(ProviderBadResponseError) as excinfo:
        _generate(_client(fake))

    assert excinfo.value.status_code == 503


def test_deadline_cancels_slow_call_with_timeout():
    fake = FakeGenaiClient(fake_gemini_response("late"), delay=2.0)

    with pytest.raises(ProviderTimeoutError):
        _generate(_client(fake), timeout_ms=50)


def test_transport_timeout_is_timeout_not_error():
    fake = FakeGenaiClient(httpx.ReadTimeout("read timed out"))
    with pytest.raises(ProviderTimeoutError):
        _generate(_client(fake))


def test_transport_failure_is_retried_then_succeeds():
    fake = FakeGenaiClient(httpx.ConnectError("connection refused"), fake_gemini_response("recovered"))

    response = _generate(_client(fake, max_attempts=2))

    assert response.text == "recovered"
    assert len(fake.models.calls) == 2


def test_transport_failure_exhausting_attempts_is_unreachable():
    fake = FakeGenaiClient(httpx.ConnectError("connection refused"))
    with pytest.raises(ProviderUnreachableError):
        _generate(_client(fake, max_attempts=1))


def test_missing_credentials_is_misconfigured_before_network():
    client = _client(None)
    with pytest.raises(ProviderMisconfiguredError):
        _generate(client)
    assert client._client is None


def test_vertex_without_project_is_misconfigured():
    assert not make_settings(use_vertexai=True, project=None).gemini.is_configured
    assert make_settings(use_vertexai=True, project="proj").gemini.is_configured
    assert make_settings(api_key="key").gemini.is_configured


def test_unsupported_provider():
    fake = FakeGenaiClient(fake_gemini_response("ok"))
    with pytest.raises(ProviderNotSupportedError):
        _generate(_client(fake, provider="openai"))
    assert fake.models.calls == []


def test_model_info():
    info = _client(None).get_model_info()
    assert info["provider"] == "gemini"
    assert info["configured"] is False
    assert info["timeoutMs"] == 25_000
