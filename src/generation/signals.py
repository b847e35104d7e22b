"""Pure signals derived from the raw notes and settings.

Nothing here has side effects; the pipeline computes these once per request
and uses them to shape the prompt and to validate the result.
"""

from __future__ import annotations

import re
from typing import Dict, Tuple

from src.generation.models import Length

TOKEN_BUDGETS: Dict[Length, int] = {
    Length.SHORT: 450,
    Length.STANDARD: 900,
    Length.DETAILED: 1400,
}

QUANTITATIVE_KEYWORDS: Tuple[str, ...] = (
    "kpi",
    "metric",
    "metrics",
    "uptime",
    "sla",
    "slo",
    "latency",
    "throughput",
    "qps",
    "rps",
    "tps",
    "error rate",
    "conversion",
    "retention",
    "churn",
    "revenue",
    "arr",
    "mrr",
    "dau",
    "wau",
    "mau",
    "nps",
    "csat",
    "tickets",
    "incidents",
    "bugs",
    "crashes",
)

_PERCENTAGE = re.compile(r"\b\d+(?:\.\d+)?%")
_PERCENTILE = re.compile(r"\bp(?:50|75|90|95|99)\b")
_DURATION = re.compile(
    r"\b\d+(?:\.\d+)?\s*(?:ms|millis(?:econds?)?|s|sec(?:onds?)?|m|min(?:utes?)?|h|hrs?|hours?)\b"
)
_DIGIT = re.compile(r"\d")


def detect_quantitative_content(raw_input: str) -> bool:
    """Return True when the notes likely contain metrics.

    Percentages, latency percentiles (p50..p99), and numbers with duration
    units count on their own. Otherwise a digit must be present together
    with one of ``QUANTITATIVE_KEYWORDS``.
    """
    text = raw_input.lower()

    if _PERCENTAGE.search(text):
        return True
    if _PERCENTILE.search(text):
        return True
    if _DURATION.search(text):
        return True

    if not _DIGIT.search(text):
        return False

    return any(keyword in text for keyword in QUANTITATIVE_KEYWORDS)


def token_budget_for_length(length: Length) -> int:
    return TOKEN_BUDGETS[Length(length)]
