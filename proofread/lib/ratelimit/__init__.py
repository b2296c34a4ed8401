"""トークンバケットによる流量制御。"""
from __future__ import annotations

from .bucket import KeyedRateLimiter, TokenBucket

__all__ = ["KeyedRateLimiter", "TokenBucket"]
