from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator, Callable, Mapping, Sequence

from proofread.lib.cancel import CancelSignal, abortable
from proofread.lib.errors.types import ErrorItem
from proofread.lib.text.patch import PatchResult, apply_error_items

from .registry import RoleRegistry
from .types import (
    META_MODEL_NAME,
    META_PREVIOUS_ITEMS,
    META_RUN_INDEX,
    AnalysisInput,
    BaseRole,
    ExecutorHooks,
    FinalPayload,
    PipelineEntry,
    PipelineEvent,
    Role,
    RoleChunk,
    RoleContext,
    RoleFinal,
    Stage,
    StreamingRole,
)

logger = logging.getLogger(__name__)

Patcher = Callable[[str, Sequence[ErrorItem]], PatchResult]


class RoleProtocolError(RuntimeError):
    """ロールが出力の約束 (final はちょうど 1 つ) を守らなかった場合の例外。"""


class PipelineExecutor:
    """パイプライン定義に従ってロールを順番に実行し、ステージごとのイベントを返す。

    各ロールには常に原文を渡す (前段の修正結果を連鎖させない)。前段までの
    final の項目は ``previous_items`` として文脈に載せる。通常の例外は
    そのラン限りの ``error`` イベントに変換し、中止 (``Cancelled``) は
    そのまま呼び出し元へ伝播させる。
    """

    def __init__(self, registry: RoleRegistry, *, patcher: Patcher = apply_error_items) -> None:
        self.registry = registry
        self.patcher = patcher

    async def run(
        self,
        entries: Sequence[PipelineEntry],
        text: str,
        *,
        signal: CancelSignal | None = None,
        metadata: Mapping[str, Any] | None = None,
        hooks: ExecutorHooks | None = None,
    ) -> AsyncIterator[PipelineEvent]:
        base_metadata = dict(metadata or {})
        collected: list[ErrorItem] = []
        analysis_input = AnalysisInput(text=text)

        for entry in entries:
            role = self.registry.get(entry.role_id)
            if role is None:
                logger.warning("pipeline_role_not_found: role=%s", entry.role_id)
                yield self._emit(
                    PipelineEvent(entry.role_id, Stage.ERROR, error=f"role_not_found: {entry.role_id}"),
                    hooks,
                )
                continue

            for run_index in range(max(1, entry.runs)):
                if signal is not None:
                    signal.raise_if_cancelled()

                yield self._emit(PipelineEvent(role.id, Stage.START, run_index=run_index), hooks)
                ctx = RoleContext(
                    signal=signal,
                    metadata={
                        **base_metadata,
                        META_RUN_INDEX: run_index,
                        META_MODEL_NAME: entry.model_name or role.default_model.name,
                        META_PREVIOUS_ITEMS: tuple(collected),
                    },
                )
                started = time.perf_counter()
                final: RoleFinal | None = None
                try:
                    async for outcome in self._outcomes(role, analysis_input, ctx, signal):
                        if isinstance(outcome, RoleFinal):
                            final = outcome
                            continue
                        if signal is not None:
                            signal.raise_if_cancelled()
                        yield self._emit(
                            PipelineEvent(role.id, Stage.CHUNK, payload=outcome, run_index=run_index),
                            hooks,
                        )
                    if final is None:
                        raise RoleProtocolError(f"role {role.id} finished without a final result")
                except Exception as exc:  # noqa: BLE001 - ステージ単位で隔離する
                    logger.warning(
                        "pipeline_stage_error: role=%s run=%d error=%s", role.id, run_index, exc, exc_info=True
                    )
                    yield self._emit(
                        PipelineEvent(role.id, Stage.ERROR, error=str(exc) or type(exc).__name__, run_index=run_index),
                        hooks,
                    )
                    continue

                # 応答と中止が同じティックで揃った場合も final は出さない
                if signal is not None:
                    signal.raise_if_cancelled()
                patch = self.patcher(text, final.items)
                collected.extend(final.items)
                logger.info(
                    "pipeline_stage_final: role=%s run=%d items=%d applied=%d elapsed_ms=%d",
                    role.id,
                    run_index,
                    len(final.items),
                    patch.applied,
                    int((time.perf_counter() - started) * 1000),
                )
                payload = FinalPayload(
                    items=final.items,
                    patched_text=patch.patched_text,
                    applied=patch.applied,
                    skipped=patch.skipped,
                    raw_output=final.raw_output,
                    error=final.error,
                    extra=final.extra,
                )
                yield self._emit(PipelineEvent(role.id, Stage.FINAL, payload=payload, run_index=run_index), hooks)

    async def _outcomes(
        self,
        role: BaseRole,
        analysis_input: AnalysisInput,
        ctx: RoleContext,
        signal: CancelSignal | None,
    ) -> AsyncIterator[RoleChunk | RoleFinal]:
        if isinstance(role, StreamingRole):
            iterator = role.stream(analysis_input, ctx).__aiter__()
            seen_final = False
            try:
                while True:
                    try:
                        outcome = await abortable(iterator.__anext__(), signal)
                    except StopAsyncIteration:
                        break
                    if seen_final:
                        raise RoleProtocolError(f"role {role.id} yielded after its final result")
                    if isinstance(outcome, RoleFinal):
                        seen_final = True
                    elif not isinstance(outcome, RoleChunk):
                        raise RoleProtocolError(f"role {role.id} yielded {type(outcome).__name__}")
                    yield outcome
            finally:
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    await aclose()
        elif isinstance(role, Role):
            outcome = await abortable(role.run(analysis_input, ctx), signal)
            if not isinstance(outcome, RoleFinal):
                raise RoleProtocolError(f"role {role.id} returned {type(outcome).__name__}")
            yield outcome
        else:
            raise RoleProtocolError(f"role {role.id} is neither Role nor StreamingRole")

    @staticmethod
    def _emit(event: PipelineEvent, hooks: ExecutorHooks | None) -> PipelineEvent:
        if hooks is not None:
            hooks.dispatch(event)
        return event


def run_pipeline(
    registry: RoleRegistry,
    entries: Sequence[PipelineEntry],
    text: str,
    *,
    signal: CancelSignal | None = None,
    metadata: Mapping[str, Any] | None = None,
    hooks: ExecutorHooks | None = None,
) -> AsyncIterator[PipelineEvent]:
    return PipelineExecutor(registry).run(entries, text, signal=signal, metadata=metadata, hooks=hooks)


__all__ = ["Patcher", "PipelineExecutor", "RoleProtocolError", "run_pipeline"]
