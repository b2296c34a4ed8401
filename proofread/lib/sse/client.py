from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

import httpx

from proofread.config.defaults import (
    DEFAULT_CLIENT_BACKOFF_MAX_MS,
    DEFAULT_CLIENT_BACKOFF_MIN_MS,
    DEFAULT_CLIENT_BASE_DELAY_MS,
    DEFAULT_CLIENT_IDLE_MS,
    DEFAULT_CLIENT_MAX_RETRIES,
    DEFAULT_CLIENT_TOTAL_TIMEOUT_MS,
)
from proofread.config.env import env_int
from proofread.lib.cancel import CancelSignal, abortable, sleep
from proofread.lib.errors.merge import MergeOptions, merge_errors
from proofread.lib.errors.types import ErrorItem, items_from_dicts

from .framing import SSEDecoder, parse_event_data

logger = logging.getLogger(__name__)

REASON_HTTP_5XX = "http-5xx"
REASON_NETWORK = "network"
REASON_IDLE = "idle"
REASON_EOF_NO_FINAL = "eof-no-final"
REASON_UNKNOWN = "unknown"

REASON_BASE_MS: dict[str, int] = {
    REASON_HTTP_5XX: 800,
    REASON_NETWORK: 700,
    REASON_IDLE: 600,
    REASON_EOF_NO_FINAL: 650,
}

MESSAGE_ABORTED = "请求已中止。"


def message_timeout(total_timeout_ms: int) -> str:
    return f"本次检测已超时（>{max(1, round(total_timeout_ms / 1000))}s）。"


def message_exhausted(max_retries: int) -> str:
    return f"连接中断，已重试 {max_retries} 次仍失败。"


@dataclass(frozen=True)
class ClientConfig:
    max_retries: int = DEFAULT_CLIENT_MAX_RETRIES
    idle_ms: int = DEFAULT_CLIENT_IDLE_MS
    base_delay_ms: int = DEFAULT_CLIENT_BASE_DELAY_MS
    total_timeout_ms: int = DEFAULT_CLIENT_TOTAL_TIMEOUT_MS
    backoff_min_ms: int = DEFAULT_CLIENT_BACKOFF_MIN_MS
    backoff_max_ms: int = DEFAULT_CLIENT_BACKOFF_MAX_MS

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            max_retries=max(1, env_int("CLIENT_MAX_RETRIES", DEFAULT_CLIENT_MAX_RETRIES)),
            idle_ms=max(1, env_int("CLIENT_SSE_IDLE_MS", DEFAULT_CLIENT_IDLE_MS)),
            base_delay_ms=max(0, env_int("CLIENT_BASE_DELAY_MS", DEFAULT_CLIENT_BASE_DELAY_MS)),
            total_timeout_ms=max(1, env_int("CLIENT_TOTAL_TIMEOUT_MS", DEFAULT_CLIENT_TOTAL_TIMEOUT_MS)),
            backoff_min_ms=max(0, env_int("CLIENT_BACKOFF_MIN_MS", DEFAULT_CLIENT_BACKOFF_MIN_MS)),
            backoff_max_ms=max(0, env_int("CLIENT_BACKOFF_MAX_MS", DEFAULT_CLIENT_BACKOFF_MAX_MS)),
        )


class CheckStatus(str, Enum):
    SUCCESS = "success"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class RetryInfo:
    attempt: int
    max_retries: int
    reason: str
    wait_ms: int


@dataclass(frozen=True)
class SseCheckCallbacks:
    on_chunk: Callable[[list[ErrorItem], str | None, int | None], None] | None = None
    on_final: Callable[[list[ErrorItem], dict[str, Any]], None] | None = None
    on_error: Callable[[str, str | None, str | None], None] | None = None
    on_retry: Callable[[RetryInfo], None] | None = None
    on_warning: Callable[[str | None, str], None] | None = None

    def chunk(self, items: list[ErrorItem], agent: str | None, run_index: int | None) -> None:
        if self.on_chunk is not None:
            self.on_chunk(items, agent, run_index)

    def final(self, items: list[ErrorItem], meta: dict[str, Any]) -> None:
        if self.on_final is not None:
            self.on_final(items, meta)

    def error(self, message: str, code: str | None = None, request_id: str | None = None) -> None:
        if self.on_error is not None:
            self.on_error(message, code, request_id)

    def retry(self, info: RetryInfo) -> None:
        if self.on_retry is not None:
            self.on_retry(info)

    def warning(self, agent: str | None, message: str) -> None:
        if self.on_warning is not None:
            self.on_warning(agent, message)


def compute_backoff_ms(
    attempt: int,
    reason: str,
    config: ClientConfig,
    rng: Callable[[], float] = random.random,
) -> int:
    """``attempt`` 回目 (1 始まり) の失敗後の待機時間。理由別の基準値に指数と揺らぎを掛ける。"""

    base = REASON_BASE_MS.get(reason, config.base_delay_ms)
    raw = base * (2 ** max(0, attempt - 1))
    jitter = 0.2 + 0.3 * rng()
    delay = int(raw * (1 + jitter))
    return max(config.backoff_min_ms, min(config.backoff_max_ms, delay))


@dataclass(frozen=True)
class _Attempt:
    status: str
    reason: str = REASON_UNKNOWN


_SUCCESS = _Attempt("success")
_TERMINAL = _Attempt("terminal")


def _retry(reason: str) -> _Attempt:
    return _Attempt("retry", reason)


def _error_detail(body: bytes, status: int) -> str:
    try:
        data = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        data = None
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {status}"


async def _attempt(
    http: httpx.AsyncClient,
    url: str,
    payload: Mapping[str, Any],
    *,
    signal: CancelSignal,
    callbacks: SseCheckCallbacks,
    idle_s: float,
    remaining: Callable[[], float],
    headers: Mapping[str, str] | None,
) -> _Attempt:
    request = http.build_request(
        "POST",
        url,
        json=dict(payload),
        headers={"Accept": "text/event-stream", **dict(headers or {})},
    )

    def _timeout() -> float:
        return max(0.0, min(idle_s, remaining()))

    try:
        response = await abortable(asyncio.wait_for(http.send(request, stream=True), _timeout()), signal)
    except asyncio.TimeoutError:
        return _retry(REASON_IDLE)
    except httpx.HTTPError as exc:
        logger.debug("sse_check_network_error: %s", exc)
        return _retry(REASON_NETWORK)

    try:
        content_type = response.headers.get("content-type", "")
        status = response.status_code

        if "application/json" in content_type:
            body = await abortable(asyncio.wait_for(response.aread(), _timeout()), signal)
            if status >= 500:
                return _retry(REASON_HTTP_5XX)
            if not response.is_success:
                callbacks.error(_error_detail(body, status), None, response.headers.get("x-request-id"))
                return _TERMINAL
            try:
                data = json.loads(body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                data = None
            if isinstance(data, dict) and isinstance(data.get("errors"), list):
                meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
                callbacks.final(items_from_dicts(data["errors"]), meta)
                return _SUCCESS
            callbacks.error("响应格式不正确。", None, response.headers.get("x-request-id"))
            return _TERMINAL

        if status >= 500:
            return _retry(REASON_HTTP_5XX)
        if not response.is_success:
            body = await abortable(asyncio.wait_for(response.aread(), _timeout()), signal)
            callbacks.error(_error_detail(body, status), None, response.headers.get("x-request-id"))
            return _TERMINAL

        decoder = SSEDecoder()
        iterator = response.aiter_text().__aiter__()
        while True:
            try:
                chunk = await abortable(asyncio.wait_for(iterator.__anext__(), _timeout()), signal)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                return _retry(REASON_IDLE)

            for data in decoder.feed(chunk):
                event = parse_event_data(data)
                if event is None:
                    continue
                kind = event.get("type")
                if kind == "chunk":
                    run_index = event.get("runIndex")
                    callbacks.chunk(
                        items_from_dicts(event.get("errors")),
                        event.get("agent"),
                        run_index if isinstance(run_index, int) else None,
                    )
                elif kind == "warning":
                    callbacks.warning(event.get("agent"), str(event.get("message") or ""))
                elif kind == "final":
                    meta = event.get("meta") if isinstance(event.get("meta"), dict) else {}
                    callbacks.final(items_from_dicts(event.get("errors")), meta)
                    return _SUCCESS
                elif kind == "error":
                    code = event.get("code")
                    if code == "aborted":
                        message = MESSAGE_ABORTED
                    else:
                        message = f"处理出错: {event.get('message') or '未知错误'}"
                    callbacks.error(message, code, event.get("requestId"))
                    return _TERMINAL
        return _retry(REASON_EOF_NO_FINAL)
    except asyncio.TimeoutError:
        return _retry(REASON_IDLE)
    except httpx.HTTPError as exc:
        logger.debug("sse_check_stream_error: %s", exc)
        return _retry(REASON_NETWORK)
    finally:
        await response.aclose()


async def sse_check(
    text: str,
    options: Mapping[str, Any] | None = None,
    controller: CancelSignal | None = None,
    callbacks: SseCheckCallbacks | None = None,
    max_retries: int | None = None,
    idle_ms: int | None = None,
    total_timeout_ms: int | None = None,
    *,
    url: str,
    client: httpx.AsyncClient | None = None,
    config: ClientConfig | None = None,
    headers: Mapping[str, str] | None = None,
    rng: Callable[[], float] = random.random,
    clock: Callable[[], float] = time.monotonic,
) -> CheckStatus:
    """校正 API を SSE で呼び出し、一時的な失敗はリクエストごと再試行する。

    試行は最大 ``max_retries`` 回で、最後の試行の後は待機しない。全体の
    期限 ``total_timeout_ms`` を使い切るとタイムアウトとして終了する。
    ``controller`` を中止すると読み込み・待機中でも ``Cancelled`` が送出される。
    """

    cfg = config or ClientConfig()
    retries = max(1, max_retries if max_retries is not None else cfg.max_retries)
    idle_s = (idle_ms if idle_ms is not None else cfg.idle_ms) / 1000.0
    total_ms = total_timeout_ms if total_timeout_ms is not None else cfg.total_timeout_ms
    signal = controller or CancelSignal()
    cbs = callbacks or SseCheckCallbacks()
    payload = {"text": text, "options": dict(options or {})}

    started = clock()

    def remaining() -> float:
        return total_ms / 1000.0 - (clock() - started)

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=httpx.Timeout(None))
    try:
        for attempt in range(1, retries + 1):
            signal.raise_if_cancelled()
            if remaining() <= 0:
                cbs.error(message_timeout(total_ms), "timeout", None)
                return CheckStatus.TERMINAL

            result = await _attempt(
                http,
                url,
                payload,
                signal=signal,
                callbacks=cbs,
                idle_s=idle_s,
                remaining=remaining,
                headers=headers,
            )
            if result.status == "success":
                return CheckStatus.SUCCESS
            if result.status == "terminal":
                return CheckStatus.TERMINAL

            logger.info("sse_check_attempt_failed: attempt=%d/%d reason=%s", attempt, retries, result.reason)
            if attempt >= retries:
                break

            remaining_ms = int(remaining() * 1000)
            if remaining_ms <= 0:
                cbs.error(message_timeout(total_ms), "timeout", None)
                return CheckStatus.TERMINAL
            wait_ms = min(compute_backoff_ms(attempt, result.reason, cfg, rng), remaining_ms)
            cbs.retry(RetryInfo(attempt=attempt, max_retries=retries, reason=result.reason, wait_ms=wait_ms))
            await sleep(wait_ms / 1000.0, signal)
    finally:
        if owns_client:
            await http.aclose()

    cbs.error(message_exhausted(retries), "retries_exhausted", None)
    return CheckStatus.TERMINAL


@dataclass
class CheckAccumulator:
    """ストリームの途中経過をマージしながら保持する。final で置き換える。"""

    text: str
    options: MergeOptions = field(default_factory=MergeOptions)
    errors: list[ErrorItem] = field(default_factory=list)
    meta: dict[str, Any] | None = None
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    retries: list[RetryInfo] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.meta is not None

    def on_chunk(self, items: list[ErrorItem], agent: str | None, run_index: int | None) -> None:
        self.errors = merge_errors(self.text, [self.errors, items], self.options)

    def on_final(self, items: list[ErrorItem], meta: dict[str, Any]) -> None:
        self.errors = merge_errors(self.text, [items], self.options)
        self.meta = meta

    def on_error(self, message: str, code: str | None, request_id: str | None) -> None:
        self.messages.append(message)

    def on_retry(self, info: RetryInfo) -> None:
        self.retries.append(info)

    def on_warning(self, agent: str | None, message: str) -> None:
        self.warnings.append(message)

    def callbacks(self) -> SseCheckCallbacks:
        return SseCheckCallbacks(
            on_chunk=self.on_chunk,
            on_final=self.on_final,
            on_error=self.on_error,
            on_retry=self.on_retry,
            on_warning=self.on_warning,
        )


__all__ = [
    "CheckAccumulator",
    "CheckStatus",
    "ClientConfig",
    "REASON_EOF_NO_FINAL",
    "REASON_HTTP_5XX",
    "REASON_IDLE",
    "REASON_NETWORK",
    "RetryInfo",
    "SseCheckCallbacks",
    "compute_backoff_ms",
    "message_exhausted",
    "message_timeout",
    "sse_check",
]
