from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from proofread.config.defaults import DEFAULT_LLM_RATE_CAPACITY, DEFAULT_LLM_RATE_REFILL_PER_SEC
from proofread.config.env import env_float, env_int
from proofread.lib.cancel import CancelSignal, abortable, sleep
from proofread.lib.ratelimit import TokenBucket

from .exceptions import LLMError, LLMRequestError, LLMTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_STATUS = {408, 429}


@dataclass(frozen=True)
class GuardConfig:
    retries: int = 2
    timeout_s: float = 30.0
    factor: float = 2.0
    min_delay_s: float = 0.2
    max_delay_s: float = 4.0
    jitter: float = 0.2
    rate_capacity: int = DEFAULT_LLM_RATE_CAPACITY
    rate_refill_per_sec: float = DEFAULT_LLM_RATE_REFILL_PER_SEC

    @classmethod
    def from_env(cls) -> "GuardConfig":
        return cls(
            retries=max(0, env_int("LLM_RETRIES", 2)),
            timeout_s=max(0.001, env_int("LLM_TIMEOUT_MS", 30_000) / 1000.0),
            rate_capacity=max(1, env_int("RATE_LIMIT_CAPACITY", DEFAULT_LLM_RATE_CAPACITY)),
            rate_refill_per_sec=max(0.001, env_float("RATE_LIMIT_REFILL_PER_SEC", DEFAULT_LLM_RATE_REFILL_PER_SEC)),
        )

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """``attempt`` 回目 (0 始まり) の失敗後に待つ秒数。"""

        base = min(self.max_delay_s, self.min_delay_s * (self.factor**attempt))
        spread = base * self.jitter
        return max(0.0, base - spread + 2 * spread * rng())


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, LLMTimeoutError):
        return True
    if isinstance(exc, LLMRequestError):
        status = exc.status_code
        if status is None:
            return True
        return status in _RETRYABLE_STATUS or status >= 500
    return False


class LLMGuard:
    """LLM 呼び出しに流量制限・試行ごとの制限時間・指数バックオフ再試行をかける。"""

    def __init__(
        self,
        config: GuardConfig | None = None,
        *,
        bucket: TokenBucket | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.config = config or GuardConfig()
        self.bucket = bucket or TokenBucket(self.config.rate_capacity, self.config.rate_refill_per_sec)
        self._rng = rng

    async def run(
        self,
        invoker: Callable[[], Awaitable[T]],
        *,
        operation: str = "llm",
        signal: CancelSignal | None = None,
    ) -> T:
        attempt = 0
        while True:
            await self.bucket.acquire(signal)
            try:
                return await abortable(asyncio.wait_for(invoker(), self.config.timeout_s), signal)
            except asyncio.TimeoutError as exc:
                failure: LLMError = LLMTimeoutError(
                    f"{operation} が {self.config.timeout_s:.1f} 秒以内に完了しませんでした。"
                )
                failure.__cause__ = exc
            except LLMError as exc:
                failure = exc

            if attempt >= self.config.retries or not is_retryable(failure):
                raise failure

            delay = self.config.delay_for(attempt, self._rng)
            attempt += 1
            logger.warning(
                "llm_retry: operation=%s attempt=%d/%d delay=%.2fs error=%s",
                operation,
                attempt,
                self.config.retries,
                delay,
                failure,
            )
            await sleep(delay, signal)


__all__ = ["GuardConfig", "LLMGuard", "is_retryable"]
