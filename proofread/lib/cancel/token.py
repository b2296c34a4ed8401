from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASON_CANCELLED = "cancelled"
REASON_TIMEOUT = "timeout"
REASON_DISCONNECTED = "client_disconnected"


class Cancelled(BaseException):
    """呼び出し側の中止要求によって処理が打ち切られたことを表す。

    ``Exception`` を継承しないため、ステージ単位の ``except Exception`` では
    捕捉されずにパイプライン全体へ伝播する。
    """

    def __init__(self, reason: str = REASON_CANCELLED) -> None:
        super().__init__(reason)
        self.reason = reason


class CancelSignal:
    """リクエストからロール・LLM 呼び出しまで引き回す中止シグナル。"""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        self.clear_timeout()
        logger.debug("cancel_signal_set: reason=%s", reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self._reason or REASON_CANCELLED)

    async def wait(self) -> None:
        await self._event.wait()

    def cancel_after(self, seconds: float, *, reason: str = REASON_TIMEOUT) -> None:
        """``seconds`` 秒後に ``reason`` 付きで中止する (タイムアウト)。"""

        self.clear_timeout()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(max(0.0, seconds), self.cancel, reason)

    def clear_timeout(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


async def abortable(awaitable: Awaitable[T], signal: CancelSignal | None) -> T:
    """``awaitable`` とシグナルを競争させ、先に中止されたら ``Cancelled`` を送出する。"""

    if signal is None:
        return await awaitable

    if signal.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        signal.raise_if_cancelled()
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.debug("abortable_task_failed_after_cancel: %r", task.exception())
    raise Cancelled(signal.reason or REASON_CANCELLED)


async def sleep(seconds: float, signal: CancelSignal | None = None) -> None:
    """中止シグナルで即座に起きる ``asyncio.sleep``。"""

    await abortable(asyncio.sleep(max(0.0, seconds)), signal)


__all__ = [
    "CancelSignal",
    "Cancelled",
    "REASON_CANCELLED",
    "REASON_DISCONNECTED",
    "REASON_TIMEOUT",
    "abortable",
    "sleep",
]
