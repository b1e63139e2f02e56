from __future__ import annotations

"""
Per-connection rate limiting for inbound socket events.

Token buckets refill continuously at a configured rate, with burst capacity
limits. Each inbound event consumes tokens according to its class:

- BASIC (1 token): movement, chat, cosmetic updates
- MODERATE (3 tokens): combat actions
- HEAVY (10 tokens): authentication (may verify a token remotely)

The limiter is fail-open: an internal error is logged and the event proceeds.
A limited event is dropped without a reply, like any other invalid input.

Environment configuration:
- GEOMMO_RATE_ENABLE: "1" to enable rate limiting (default: disabled)
- GEOMMO_RATE_CAPACITY: maximum burst tokens per SID (default: 50)
- GEOMMO_RATE_REFILL_PER_SEC: tokens refilled per second (default: 5.0)
- GEOMMO_RATE_LOG_VIOLATIONS: "1" to log rate limit violations (default: enabled)
"""

import os
import time
import logging
from enum import Enum
from typing import Dict


_logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Classification of inbound events by cost."""
    BASIC = 1
    MODERATE = 3
    HEAVY = 10


class TokenBucket:
    """Classic token bucket for a single connection.

    Tokens are added at ``refill_rate`` per second up to ``capacity``; the
    bucket starts full.
    """

    def __init__(self, capacity: float, refill_rate: float):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = capacity
        self.last_update = time.time()

    def consume(self, tokens: float) -> bool:
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def _refill(self) -> None:
        now = time.time()
        elapsed = max(0.0, now - self.last_update)
        self.last_update = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)


class RateLimiter:
    """Per-SID token buckets, configured from the environment unless overridden."""

    def __init__(self, enabled: bool | None = None, capacity: float | None = None,
                 refill_per_sec: float | None = None):
        self._buckets: Dict[str, TokenBucket] = {}
        self._enabled = self._parse_bool_env('GEOMMO_RATE_ENABLE', False) if enabled is None else enabled
        self._capacity = float(os.getenv('GEOMMO_RATE_CAPACITY', '50')) if capacity is None else float(capacity)
        self._refill_per_sec = (float(os.getenv('GEOMMO_RATE_REFILL_PER_SEC', '5.0'))
                                if refill_per_sec is None else float(refill_per_sec))
        self._log_violations = self._parse_bool_env('GEOMMO_RATE_LOG_VIOLATIONS', True)

        if self._enabled:
            _logger.info(f"Rate limiting enabled: capacity={self._capacity}, "
                         f"refill={self._refill_per_sec}/sec")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def check_and_consume(self, sid: str | None, operation_type: OperationType,
                          operation_name: str = "unknown") -> bool:
        """Return True when the event may proceed, consuming its tokens."""
        if not self._enabled:
            return True

        effective_sid = sid or "anonymous"

        try:
            bucket = self._buckets.get(effective_sid)
            if bucket is None:
                bucket = TokenBucket(self._capacity, self._refill_per_sec)
                self._buckets[effective_sid] = bucket

            tokens_needed = operation_type.value
            if bucket.consume(tokens_needed):
                return True
            if self._log_violations:
                _logger.warning(f"Rate limit violation: SID {effective_sid} "
                                f"blocked from {operation_name} "
                                f"(needed {tokens_needed} tokens, had {bucket.tokens:.1f})")
            return False

        except Exception as e:
            _logger.error(f"Rate limiter error for SID {effective_sid}, "
                          f"operation {operation_name}: {e}")
            return True

    def get_bucket_status(self, sid: str | None) -> tuple[float, float]:
        """(current_tokens, capacity) for a SID; a fresh SID reports a full bucket."""
        bucket = self._buckets.get(sid or "anonymous")
        if bucket is None:
            return (self._capacity, self._capacity)
        bucket._refill()
        return (bucket.tokens, bucket.capacity)

    def reset_bucket(self, sid: str | None) -> None:
        """Forget a SID's bucket (called on disconnect)."""
        self._buckets.pop(sid or "anonymous", None)

    @staticmethod
    def _parse_bool_env(key: str, default: bool) -> bool:
        value = os.getenv(key, '').strip().lower()
        if value in ('1', 'true', 'yes', 'on'):
            return True
        elif value in ('0', 'false', 'no', 'off'):
            return False
        else:
            return default
