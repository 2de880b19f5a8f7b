"""
Rate Limiting Infrastructure

Token bucket pacing for outbound RPC and naming-service calls.
Keeps a sync invocation under provider request ceilings so that rate-limit
retries stay the exception rather than the rule.
"""
import asyncio
import time
import logging
from typing import Dict, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Rate limit configuration for a provider"""
    requests_per_second: float
    burst_size: int  # Max tokens (burst capacity)

    @property
    def refill_rate(self) -> float:
        """Tokens added per second"""
        return self.requests_per_second


class TokenBucket:
    """
    Token bucket for rate limiting.

    Tokens are added at a constant rate (refill_rate).
    Each request consumes 1 token.
    If no tokens available, request waits until token is available.
    """

    def __init__(self, config: RateLimitConfig):
        assert config.requests_per_second > 0, "requests_per_second must be positive"
        self.config = config
        self.tokens = float(config.burst_size)  # Start full
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.tokens + elapsed * self.config.refill_rate, self.config.burst_size)
        self.last_refill = now

    async def acquire(self, tokens: int = 1) -> float:
        """
        Acquire tokens from bucket, waiting for refill if needed.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return waited

                wait_time = (tokens - self.tokens) / self.config.refill_rate
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s for {tokens} tokens")
                await asyncio.sleep(wait_time)
                waited += wait_time

    def get_available_tokens(self) -> float:
        """Get current number of available tokens"""
        self._refill()
        return self.tokens


class RateLimiter:
    """
    Per-provider rate limiter.

    One instance is owned by each sync invocation; nothing is shared across
    processes or requests.
    """

    DEFAULT_LIMITS = {
        "base_rpc": RateLimitConfig(requests_per_second=20.0, burst_size=20),
        "basename": RateLimitConfig(requests_per_second=5.0, burst_size=5),
        "ens": RateLimitConfig(requests_per_second=5.0, burst_size=5),
        "default": RateLimitConfig(requests_per_second=5.0, burst_size=10),
    }

    def __init__(self, custom_limits: Optional[Dict[str, RateLimitConfig]] = None):
        self._buckets: Dict[str, TokenBucket] = {}
        self._custom_limits = custom_limits or {}
        self.throttled_seconds: Dict[str, float] = {}

    def _get_bucket(self, provider: str) -> TokenBucket:
        """Get or create token bucket for provider"""
        if provider not in self._buckets:
            config = (
                self._custom_limits.get(provider) or
                self.DEFAULT_LIMITS.get(provider) or
                self.DEFAULT_LIMITS["default"]
            )
            self._buckets[provider] = TokenBucket(config)
            logger.debug(
                f"Created rate limiter for {provider}: "
                f"{config.requests_per_second} req/s, burst={config.burst_size}"
            )
        return self._buckets[provider]

    async def acquire(self, provider: str, tokens: int = 1) -> None:
        """Acquire tokens for provider (may wait)."""
        waited = await self._get_bucket(provider).acquire(tokens)
        if waited:
            self.throttled_seconds[provider] = self.throttled_seconds.get(provider, 0.0) + waited

    def get_available_tokens(self, provider: str) -> float:
        """Get available tokens for provider"""
        return self._get_bucket(provider).get_available_tokens()
