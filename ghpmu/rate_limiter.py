"""Token bucket rate limiter for GitHub GraphQL requests."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket limiter that also honours GitHub's rate-limit headers

    Tokens are replenished at a constant rate and consumed for each request.
    When a response reports ``X-RateLimit-Remaining: 0`` the bucket is frozen
    until ``X-RateLimit-Reset`` so the next request waits instead of failing.
    """

    def __init__(self, requests_per_second: float, burst_allowance: int = 5):
        """
        Initialize rate limiter

        Args:
            requests_per_second: Sustained rate limit (tokens added per second)
            burst_allowance: Maximum tokens in bucket (allows short bursts)
        """
        self.rate = requests_per_second
        self.burst_allowance = burst_allowance
        self.tokens = float(burst_allowance)
        self.last_update = time.time()
        self.blocked_until = 0.0
        self.remaining: int | None = None
        self._lock = threading.Lock()

    def acquire(self, timeout: float = 5.0) -> bool:
        """
        Acquire permission to make a request

        Blocks until a token is available or timeout is reached.

        Args:
            timeout: Maximum time to wait for permission (seconds)

        Returns:
            True if permission granted, False if timeout
        """
        deadline = time.time() + timeout

        while time.time() < deadline:
            with self._lock:
                now = time.time()
                time_passed = now - self.last_update
                self.tokens = min(self.burst_allowance, self.tokens + time_passed * self.rate)
                self.last_update = now

                if now >= self.blocked_until and self.tokens >= 1.0:
                    self.tokens -= 1.0
                    return True

            time.sleep(0.01)

        return False

    def observe(self, headers: Mapping[str, str]) -> None:
        """Record GitHub's rate-limit headers from a response

        Args:
            headers: Response headers (``X-RateLimit-Remaining`` / ``X-RateLimit-Reset``)
        """
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        if remaining is None:
            return

        try:
            remaining_count = int(remaining)
        except ValueError:
            return

        with self._lock:
            self.remaining = remaining_count
            if remaining_count <= 0 and reset:
                try:
                    self.blocked_until = float(reset)
                except ValueError:
                    return
                logger.warning(
                    "GitHub rate limit exhausted; pausing requests until %s",
                    time.strftime("%H:%M:%S", time.localtime(self.blocked_until)),
                )

    def get_status(self) -> dict[str, Any]:
        """Get current rate limiter status for debugging"""
        with self._lock:
            return {
                "available_tokens": self.tokens,
                "max_tokens": self.burst_allowance,
                "rate_per_second": self.rate,
                "utilization_percent": (1 - self.tokens / self.burst_allowance) * 100
                if self.burst_allowance
                else 0.0,
                "github_remaining": self.remaining,
                "blocked_until": self.blocked_until,
            }
