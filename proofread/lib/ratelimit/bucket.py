from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

from proofread.lib.cancel import CancelSignal, sleep

Clock = Callable[[], float]


class TokenBucket:
    """プロセス内で完結するトークンバケット。"""

    def __init__(self, capacity: float, refill_per_sec: float, *, clock: Clock = time.monotonic) -> None:
        if capacity <= 0 or refill_per_sec <= 0:
            raise ValueError("capacity and refill_per_sec must be positive")
        self.capacity = float(capacity)
        self.refill_per_sec = float(refill_per_sec)
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_sec)
        self._updated = now

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self, tokens: float = 1.0) -> bool:
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    def retry_after(self, tokens: float = 1.0) -> float:
        """``tokens`` 個たまるまでの秒数。"""

        self._refill()
        missing = tokens - self._tokens
        return max(0.0, missing / self.refill_per_sec)

    async def acquire(self, signal: CancelSignal | None = None, tokens: float = 1.0) -> None:
        while not self.try_acquire(tokens):
            await sleep(max(self.retry_after(tokens), 1.0 / self.refill_per_sec), signal)


class KeyedRateLimiter:
    """キー (クライアント IP など) ごとにバケットを持つ制限器。"""

    def __init__(
        self,
        capacity: float,
        refill_per_sec: float,
        *,
        max_keys: int = 10_000,
        clock: Clock = time.monotonic,
    ) -> None:
        self.capacity = capacity
        self.refill_per_sec = refill_per_sec
        self.max_keys = max_keys
        self._clock = clock
        self._buckets: OrderedDict[str, TokenBucket] = OrderedDict()

    @classmethod
    def per_minute(cls, limit: int, **kwargs: object) -> "KeyedRateLimiter":
        return cls(float(limit), limit / 60.0, **kwargs)  # type: ignore[arg-type]

    def allow(self, key: str) -> bool:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(self.capacity, self.refill_per_sec, clock=self._clock)
            self._buckets[key] = bucket
            while len(self._buckets) > self.max_keys:
                self._buckets.popitem(last=False)
        else:
            self._buckets.move_to_end(key)
        return bucket.try_acquire()


__all__ = ["Clock", "KeyedRateLimiter", "TokenBucket"]
