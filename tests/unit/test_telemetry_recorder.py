"""Unit tests for the per-request telemetry recorder.

Tests validate:
- Salted, truncated client hashing
- Exactly-once emission per request
- Events carry counts only, never raw notes or generated markdown
- Sink failures never escape the recorder
"""

import json
import logging

from src.common.logging import JsonFormatter
from src.common.pii import count_meaningful_chars, excerpt_text, hash_client_id
from src.common.testing import RecordingSink
from src.generation.models import Audience, Length, Tone
from src.telemetry.models import (
    TELEMETRY_VERSION,
    ErrorCategory,
    OutcomeMetrics,
    PerformanceMetrics,
    ProviderInfo,
    RateLimitType,
    RequestMetrics,
    SettingsMetrics,
    TokenUsageMetrics,
    ValidationMetrics,
)
from src.telemetry.recorder import TelemetryRecorder, generate_request_id

SECRET_NOTES = "Acquisition of Initech closes Friday, do not share"


def _recorder(sink, **kwargs):
    return TelemetryRecorder("203.0.113.7", salt="test-salt", sink=sink, **kwargs)


def _fill_success_metrics(recorder):
    recorder.set_request_metrics(
        RequestMetrics(
            input_length=len(SECRET_NOTES),
            meaningful_char_count=count_meaningful_chars(SECRET_NOTES),
            settings=SettingsMetrics(audience=Audience.EXEC, length=Length.SHORT, tone=Tone.NEUTRAL),
        )
    )
    recorder.set_performance_metrics(
        PerformanceMetrics(token_budget=450, token_usage=TokenUsageMetrics(input_tokens=10, output_tokens=20))
    )
    recorder.set_validation_metrics(ValidationMetrics(metrics_detected=False, validation_warning_count=1))


def test_hash_client_id_is_salted_and_truncated():
    hashed = hash_client_id("203.0.113.7", "salt-a")

    assert len(hashed) == 12
    assert all(c in "0123456789abcdef" for c in hashed)
    assert hashed == hash_client_id("203.0.113.7", "salt-a")
    assert hashed != hash_client_id("203.0.113.7", "salt-b")
    assert hashed != hash_client_id("203.0.113.8", "salt-a")


def test_meaningful_chars_counts_ascii_alphanumerics():
    assert count_meaningful_chars("a1 - b2!! ...") == 4
    assert count_meaningful_chars("........") == 0


def test_excerpt_text_marks_cut():
    assert excerpt_text("  short  ", 700) == "short"
    assert excerpt_text("abcdef", 3) == "abc\n…"


def test_request_id_shape():
    millis, suffix = generate_request_id().split("-")
    assert millis.isdigit()
    assert len(suffix) == 6


def test_success_event_shape():
    sink = RecordingSink()
    recorder = _recorder(sink)
    _fill_success_metrics(recorder)

    recorder.emit_success(OutcomeMetrics(status_code=200, output_length=321), ProviderInfo(name="gemini", model="m"))

    assert sink.event_names == ["generate.success"]
    event = sink.events[0]
    assert event["_telemetry"] == TELEMETRY_VERSION
    assert event["hashedClientId"] == hash_client_id("203.0.113.7", "test-salt")
    assert event["requestId"] == recorder.request_id
    assert event["request"]["settings"] == {"audience": "Exec", "length": "Short", "tone": "Neutral"}
    assert event["performance"]["tokenBudget"] == 450
    assert event["performance"]["tokenUsage"] == {"inputTokens": 10, "outputTokens": 20}
    assert event["performance"]["durationMs"] >= 0
    assert event["validation"] == {"metricsDetected": False, "validationWarningCount": 1}
    assert event["outcome"] == {"statusCode": 200, "outputLength": 321}
    assert event["rateLimit"] == {"wasRateLimited": False}


def test_events_never_contain_raw_content_or_address():
    sink = RecordingSink()
    recorder = _recorder(sink)
    _fill_success_metrics(recorder)

    recorder.emit_success(OutcomeMetrics(status_code=200, output_length=10), ProviderInfo(name="stub"))

    serialized = json.dumps(sink.events)
    assert "Initech" not in serialized
    assert "203.0.113.7" not in serialized


def test_emits_exactly_once():
    sink = RecordingSink()
    recorder = _recorder(sink)

    recorder.emit_error(502, "provider_error", ErrorCategory.PROVIDER)
    recorder.emit_error(500, "generation_failed", ErrorCategory.INTERNAL)
    recorder.emit_rate_limited(RateLimitType.CLIENT, 5)

    assert sink.event_names == ["generate.error"]
    assert recorder.emitted


def test_error_event_without_request_metrics():
    sink = RecordingSink()
    recorder = _recorder(sink)

    recorder.emit_error(400, "invalid_json", ErrorCategory.VALIDATION)

    event = sink.events[0]
    assert event["outcome"] == {"statusCode": 400, "errorCode": "invalid_json", "errorCategory": "validation"}
    assert "request" not in event
    assert "performance" not in event


def test_rate_limited_event():
    sink = RecordingSink()
    recorder = _recorder(sink)

    recorder.emit_rate_limited(RateLimitType.CLIENT, 42)

    assert sink.events[0]["rateLimit"] == {"wasRateLimited": True, "limitType": "ip", "retryAfterSeconds": 42}


def test_disabled_recorder_emits_nothing():
    sink = RecordingSink()
    recorder = _recorder(sink, enabled=False)

    recorder.emit_rate_limited(RateLimitType.KILL_SWITCH)

    assert sink.events == []


def test_sink_failure_is_swallowed_and_logged(caplog):
    def broken_sink(payload):
        raise RuntimeError("sink down")

    recorder = _recorder(broken_sink)

    with caplog.at_level(logging.ERROR, logger="updateforge.telemetry"):
        recorder.emit_rate_limited(RateLimitType.GLOBAL)

    assert recorder.emitted
    assert any(getattr(record, "event", None) == "telemetry.error" for record in caplog.records)



def test_default_sink_logs_payload_under_telemetry_key(caplog):
    recorder = TelemetryRecorder("203.0.113.7", salt="test-salt")

    with caplog.at_level(logging.INFO, logger="updateforge.telemetry"):
        recorder.emit_rate_limited(RateLimitType.CLIENT, retry_after_seconds=5)

    records = [record for record in caplog.records if record.name == "updateforge.telemetry"]
    assert len(records) == 1
    record = records[0]
    assert record.getMessage() == "generate.rate_limited"
    assert record.telemetry["hashedClientId"] == hash_client_id("203.0.113.7", "test-salt")
    assert record.telemetry["rateLimit"]["retryAfterSeconds"] == 5

    line = json.loads(JsonFormatter().format(record))
    assert line["service"] == "updateforge"
    assert line["event"] == "generate.rate_limited"
    assert line["telemetry"]["requestId"] == recorder.request_id
    assert "203.0.113.7" not in json.dumps(line)

def test_success_without_required_metrics_is_swallowed():
    sink = RecordingSink()
    recorder = _recorder(sink)

    recorder.emit_success(OutcomeMetrics(status_code=200, output_length=1), ProviderInfo(name="stub"))

    assert sink.events == []
    assert recorder.emitted
