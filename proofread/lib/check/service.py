from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

from proofread.config.settings import AppSettings
from proofread.lib.cancel import CancelSignal, Cancelled
from proofread.lib.cancel.token import REASON_TIMEOUT
from proofread.lib.errors.merge import merge_errors
from proofread.lib.errors.sources import attach_sources
from proofread.lib.errors.types import ErrorItem, items_to_dicts
from proofread.lib.roles.executor import PipelineExecutor
from proofread.lib.roles.types import (
    META_ENABLED_TYPES,
    FinalPayload,
    PipelineEntry,
    PipelineEvent,
    RoleChunk,
    Stage,
)
from proofread.lib.text.patch import apply_error_items

logger = logging.getLogger(__name__)

MESSAGE_ABORTED = "请求已中止。"
MESSAGE_INTERNAL = "处理出错，请稍后重试。"
WARNING_REVIEW_FALLBACK = "reviewer_fallback"


def timeout_message(timeout_ms: int) -> str:
    return f"本次检测已超时（>{max(1, round(timeout_ms / 1000))}s）。"


@dataclass(frozen=True)
class CheckOutcome:
    errors: list[dict[str, Any]]
    meta: dict[str, Any]
    patched_text: str


@dataclass
class _RunState:
    """1 リクエスト分の集計状態。"""

    candidate_groups: list[list[ErrorItem]] = field(default_factory=list)
    review_items: list[ErrorItem] | None = None
    review_configured: bool = False
    warnings: list[str] = field(default_factory=list)


class CheckService:
    """実行器のイベントを配信用イベントへ変換し、最終結果をまとめる。

    審査ロール (capability ``review``) が成功して項目を返した場合はその
    結果を最終結果とし、失敗・空・未設定のときは候補ロールの結果を
    マージしたものにフォールバックする。
    """

    def __init__(self, executor: PipelineExecutor, settings: AppSettings | None = None) -> None:
        self.executor = executor
        self.settings = settings or AppSettings()

    def _is_review(self, role_id: str) -> bool:
        role = self.executor.registry.get(role_id)
        return role is not None and "review" in role.capabilities

    def _is_streaming(self, role_id: str) -> bool:
        role = self.executor.registry.get(role_id)
        return role is not None and role.streaming

    async def events(
        self,
        text: str,
        *,
        pipeline: Sequence[PipelineEntry] | None = None,
        enabled_types: Sequence[str] | None = None,
        signal: CancelSignal | None = None,
        request_id: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """配信用イベント (dict) を返す。中止・内部エラーは ``error`` イベントで終わる。"""

        try:
            async for event in self._stream(
                text,
                pipeline=pipeline,
                enabled_types=enabled_types,
                signal=signal,
                request_id=request_id,
            ):
                yield event
        except Cancelled as exc:
            timed_out = exc.reason == REASON_TIMEOUT
            logger.info("check_cancelled: reason=%s", exc.reason)
            yield {
                "type": "error",
                "code": "timeout" if timed_out else "aborted",
                "message": timeout_message(self.settings.analyze_timeout_ms) if timed_out else MESSAGE_ABORTED,
                "requestId": request_id,
            }
        except Exception:  # noqa: BLE001 - ストリーム上でエラーとして通知する
            logger.exception("check_failed")
            yield {"type": "error", "code": "internal", "message": MESSAGE_INTERNAL, "requestId": request_id}

    async def check(
        self,
        text: str,
        *,
        pipeline: Sequence[PipelineEntry] | None = None,
        enabled_types: Sequence[str] | None = None,
        signal: CancelSignal | None = None,
        request_id: str | None = None,
    ) -> CheckOutcome:
        """パイプラインを最後まで実行して最終結果を返す。中止は ``Cancelled`` で伝える。"""

        final: dict[str, Any] | None = None
        async for event in self._stream(
            text,
            pipeline=pipeline,
            enabled_types=enabled_types,
            signal=signal,
            request_id=request_id,
        ):
            if event["type"] == "final":
                final = event
        if final is None:  # pragma: no cover - _stream は必ず final で終わる
            raise RuntimeError("pipeline finished without a final event")
        return CheckOutcome(errors=final["errors"], meta=final["meta"], patched_text=final["patchedText"])

    async def _stream(
        self,
        text: str,
        *,
        pipeline: Sequence[PipelineEntry] | None,
        enabled_types: Sequence[str] | None,
        signal: CancelSignal | None,
        request_id: str | None,
    ) -> AsyncIterator[dict[str, Any]]:
        entries = tuple(pipeline or self.settings.pipeline)
        signal = signal or CancelSignal()
        if self.settings.analyze_timeout_ms > 0:
            signal.cancel_after(self.settings.analyze_timeout_ms / 1000.0, reason=REASON_TIMEOUT)

        metadata: dict[str, Any] = {"request_id": request_id}
        if enabled_types:
            metadata[META_ENABLED_TYPES] = tuple(enabled_types)

        state = _RunState(review_configured=any(self._is_review(entry.role_id) for entry in entries))
        started = time.perf_counter()
        logger.info(
            "check_started: pipeline=%s length=%d",
            ",".join(f"{entry.role_id}*{entry.runs}" for entry in entries),
            len(text),
        )
        if self.settings.log_payload:
            logger.debug("check_payload: text=%r", text)

        try:
            async for event in self.executor.run(entries, text, signal=signal, metadata=metadata):
                for wire in self._translate(event, state):
                    yield wire
        finally:
            signal.clear_timeout()

        final_items = self._select_final(text, state, enabled_types)
        patched = apply_error_items(text, final_items)
        meta: dict[str, Any] = {
            "elapsedMs": int((time.perf_counter() - started) * 1000),
            "pipeline": [entry.as_dict() for entry in entries],
            "requestId": request_id,
        }
        if enabled_types:
            meta["enabledTypes"] = list(enabled_types)
        if state.warnings:
            meta["warnings"] = list(state.warnings)
        logger.info("check_finished: errors=%d elapsed_ms=%d", len(final_items), meta["elapsedMs"])
        yield {
            "type": "final",
            "errors": items_to_dicts(final_items),
            "meta": meta,
            "patchedText": patched.patched_text,
        }

    def _translate(self, event: PipelineEvent, state: _RunState) -> list[dict[str, Any]]:
        role_id = event.role_id
        if event.stage is Stage.START:
            return []

        if event.stage is Stage.ERROR:
            if event.run_index is None:
                message = event.error or "error"
            else:
                message = f"{role_id}#{event.run_index}: {event.error}"
            state.warnings.append(message)
            return [{"type": "warning", "agent": role_id, "message": message, "runIndex": event.run_index}]

        if event.stage is Stage.CHUNK and isinstance(event.payload, RoleChunk):
            tagged = attach_sources(event.payload.items, role_id)
            return [_chunk_event(role_id, event.run_index, tagged)]

        if event.stage is Stage.FINAL and isinstance(event.payload, FinalPayload):
            payload = event.payload
            tagged = attach_sources(payload.items, role_id)
            out: list[dict[str, Any]] = []
            if self._is_review(role_id):
                if payload.error is None:
                    state.review_items = tagged
            else:
                state.candidate_groups.append(tagged)
            if not self._is_streaming(role_id):
                out.append(_chunk_event(role_id, event.run_index, tagged))
            if payload.error:
                message = f"{role_id}#{event.run_index}: {payload.error}"
                state.warnings.append(message)
                out.append({"type": "warning", "agent": role_id, "message": message, "runIndex": event.run_index})
            return out

        return []

    def _select_final(
        self,
        text: str,
        state: _RunState,
        enabled_types: Sequence[str] | None,
    ) -> list[ErrorItem]:
        options = self.settings.merge
        review = state.review_items
        use_review = review is not None and (bool(review) or not self.settings.review_fallback_on_empty)
        if use_review:
            final_items = merge_errors(text, [review or []], options)
        else:
            final_items = merge_errors(text, state.candidate_groups, options)
            if state.review_configured:
                state.warnings.append(WARNING_REVIEW_FALLBACK)
        if enabled_types:
            allowed = set(enabled_types)
            final_items = [item for item in final_items if item.type in allowed]
        return final_items


def _chunk_event(role_id: str, run_index: int | None, items: Sequence[ErrorItem]) -> dict[str, Any]:
    return {"type": "chunk", "agent": role_id, "runIndex": run_index, "errors": items_to_dicts(items)}


__all__ = [
    "CheckOutcome",
    "CheckService",
    "MESSAGE_ABORTED",
    "MESSAGE_INTERNAL",
    "WARNING_REVIEW_FALLBACK",
    "timeout_message",
]
