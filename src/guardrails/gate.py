"""Orchestrates all guardrail checks before allowing generation.

Checks run in order and fail fast on the first rejection:
1. Kill switch - is generation enabled?
2. Per-client rate limit - has this client exceeded its window quota?
3. Global daily limit - has the daily cap been reached?

The gate runs before the request body is parsed so rejected requests never
pay for parsing, validation, or a provider call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.common.logging import get_logger, log_decision
from src.guardrails.kill_switch import KillSwitch
from src.guardrails.rate_limit import RateLimiter

logger = get_logger(__name__)


class LimitType(str, Enum):
    """Which guardrail rejected the request."""

    KILL_SWITCH = "kill_switch"
    CLIENT = "ip"
    GLOBAL = "global"


@dataclass(frozen=True)
class Rejection:
    http_status: int
    code: str
    message: str
    limit_type: LimitType
    retry_after_seconds: Optional[int] = None

    @property
    def headers(self) -> dict:
        if self.retry_after_seconds is None:
            return {}
        return {"Retry-After": str(self.retry_after_seconds)}


@dataclass(frozen=True)
class GateDecision:
    """Result of a guardrail check: allowed, or a rejection to send back."""

    rejection: Optional[Rejection] = None
    remaining: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.rejection is None


class GuardrailGate:
    def __init__(self, *, kill_switch: KillSwitch, rate_limiter: RateLimiter):
        self.kill_switch = kill_switch
        self.rate_limiter = rate_limiter

    def check(self, client_id: str, *, request_id: Optional[str] = None) -> GateDecision:
        """Run all guardrail checks for a generation request.

        Args:
            client_id: Client identity used as the rate-limit key.
            request_id: Correlation id for decision logs.

        Returns:
            GateDecision; ``decision.rejection`` is set when the request must
            not proceed.
        """
        if not self.kill_switch.is_enabled():
            return self._reject(
                Rejection(
                    http_status=503,
                    code="generation_disabled",
                    message="live generation is temporarily disabled",
                    limit_type=LimitType.KILL_SWITCH,
                ),
                request_id=request_id,
            )

        client_result = self.rate_limiter.check_client(client_id)
        if not client_result.allowed:
            retry_after = max(1, client_result.reset_at - int(self.rate_limiter.now()))
            return self._reject(
                Rejection(
                    http_status=429,
                    code="rate_limited",
                    message="too many requests, please wait before trying again",
                    limit_type=LimitType.CLIENT,
                    retry_after_seconds=retry_after,
                ),
                request_id=request_id,
            )

        # Reset time of the daily cap is deliberately not exposed.
        global_result = self.rate_limiter.check_global_daily()
        if not global_result.allowed:
            return self._reject(
                Rejection(
                    http_status=429,
                    code="daily_limit_reached",
                    message="daily usage limit reached, please try again tomorrow",
                    limit_type=LimitType.GLOBAL,
                ),
                request_id=request_id,
            )

        log_decision(
            logger,
            request_id=request_id,
            action="admission",
            outcome="allowed",
            remaining=client_result.remaining,
        )
        return GateDecision(remaining=client_result.remaining)

    def _reject(self, rejection: Rejection, *, request_id: Optional[str]) -> GateDecision:
        log_decision(
            logger,
            request_id=request_id,
            action="admission",
            outcome="rejected",
            code=rejection.code,
            limit_type=rejection.limit_type.value,
            retry_after_seconds=rejection.retry_after_seconds,
        )
        return GateDecision(rejection=rejection)
