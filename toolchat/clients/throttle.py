"""Client-side rate limiting for outbound API calls, built on moving windows from ``limits``."""

import asyncio
import time

from limits import RateLimitItem, RateLimitItemPerSecond, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def _seconds_until_reset(limiter: MovingWindowRateLimiter, limit: RateLimitItem, key: str) -> float:
    stats = limiter.get_window_stats(limit, key)
    # reset_time is epoch seconds
    return max(0.0, stats.reset_time - time.time()) if stats else 0.0


class RequestThrottle:
    """Allow one request per ``interval_seconds``; concurrent callers queue up in order."""

    def __init__(self, interval_seconds: int = 1, identifier: str = "throttle"):
        self.identifier = identifier
        self.limit = RateLimitItemPerSecond(1, interval_seconds)
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while not self.limiter.hit(self.limit, self.identifier):
                delay = max(0.01, _seconds_until_reset(self.limiter, self.limit, self.identifier))
                logger.debug(f"Throttling {self.identifier}: waiting {delay:.2f}s")
                await asyncio.sleep(delay)


class TokenBudgetLimiter:
    """Per-minute budgets for requests and estimated tokens.

    A call over budget waits for its window to reset once and then proceeds; the
    provider's own 429 handling covers anything the estimate misses.
    """

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000, identifier: str = "anthropic"):
        self.identifier = identifier
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int) -> None:
        logger.debug(f"Rate check for {self.identifier}: {estimated_tokens} estimated tokens")

        if not self.limiter.hit(self.request_limit, self.identifier):
            await self._wait("Request", self.request_limit, self.identifier)

        token_key = f"{self.identifier}_tokens"
        cost = max(1, min(estimated_tokens, self.token_limit.amount))
        if not self.limiter.hit(self.token_limit, token_key, cost=cost):
            await self._wait("Token", self.token_limit, token_key)

    async def _wait(self, what: str, limit: RateLimitItem, key: str) -> None:
        delay = _seconds_until_reset(self.limiter, limit, key)
        if delay > 0:
            logger.warning(f"{what} budget for {self.identifier} exhausted, waiting {delay:.2f}s")
            await asyncio.sleep(delay)
