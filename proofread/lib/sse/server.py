from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from proofread.lib.cancel import CancelSignal
from proofread.lib.cancel.token import REASON_DISCONNECTED

from .framing import format_comment, format_data

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_END = object()


async def stream_sse(
    events: AsyncIterator[dict[str, Any]],
    *,
    signal: CancelSignal,
    heartbeat_s: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """イベント列を SSE フレーム列に変換する。

    最初に ``:ready`` を送り、イベント待ちの間は ``heartbeat_s`` ごとに
    ``:keep-alive`` を送る。切断を検知するかこのジェネレータが閉じられたら
    シグナルを中止し、イベント生成タスクを止める。
    """

    queue: asyncio.Queue[object] = asyncio.Queue()

    async def worker() -> None:
        try:
            async for event in events:
                await queue.put(event)
        except Exception:  # noqa: BLE001
            logger.exception("sse_worker_failed")
        finally:
            await queue.put(_END)

    worker_task = asyncio.create_task(worker())
    try:
        yield format_comment("ready")
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=heartbeat_s)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("sse_client_disconnected")
                    break
                yield format_comment("keep-alive")
                continue

            if item is _END:
                break
            yield format_data(item)
    finally:
        if not worker_task.done():
            signal.cancel(REASON_DISCONNECTED)
            worker_task.cancel()
            try:
                await worker_task
            except asyncio.CancelledError:
                pass


__all__ = ["SSE_HEADERS", "stream_sse"]
