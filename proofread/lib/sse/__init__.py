"""Server-Sent Events の送受信。"""
from __future__ import annotations

from .client import (
    CheckAccumulator,
    CheckStatus,
    ClientConfig,
    RetryInfo,
    SseCheckCallbacks,
    compute_backoff_ms,
    sse_check,
)
from .framing import SSEDecoder, format_comment, format_data, parse_event_data
from .server import SSE_HEADERS, stream_sse

__all__ = [
    "CheckAccumulator",
    "CheckStatus",
    "ClientConfig",
    "RetryInfo",
    "SSEDecoder",
    "SSE_HEADERS",
    "SseCheckCallbacks",
    "compute_backoff_ms",
    "format_comment",
    "format_data",
    "parse_event_data",
    "sse_check",
    "stream_sse",
]
