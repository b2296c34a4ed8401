from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from proofread.cmd.schemas.check import (
    ApplySuggestionRequestPayload,
    ApplySuggestionResponsePayload,
    CheckRequestPayload,
    CheckResponsePayload,
    ErrorItemPayload,
    RoleInfoPayload,
)
from proofread.config.logging import setup_logging
from proofread.config.settings import AppSettings
from proofread.lib.cancel import CancelSignal, Cancelled
from proofread.lib.cancel.token import REASON_DISCONNECTED, REASON_TIMEOUT
from proofread.lib.check import CheckService, timeout_message
from proofread.lib.check.service import MESSAGE_ABORTED, MESSAGE_INTERNAL
from proofread.lib.diagnostics import new_request_id, request_context, set_request_context
from proofread.lib.errors.types import ErrorItem
from proofread.lib.llm import ChatModel, OpenAICompatibleClient
from proofread.lib.ratelimit import KeyedRateLimiter
from proofread.lib.roles import PipelineExecutor, RoleRegistry, register_builtin_roles
from proofread.lib.sse import SSE_HEADERS, stream_sse
from proofread.lib.text import apply_suggestion

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "请求过于频繁，请稍后再试。"


def _wants_event_stream(request: Request) -> bool:
    return "text/event-stream" in request.headers.get("accept", "").lower()


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _watch_disconnect(request: Request, signal: CancelSignal, interval_s: float) -> None:
    """JSON 応答の待機中にクライアント切断を検知したらシグナルを中止する。"""

    while not signal.cancelled:
        if await request.is_disconnected():
            logger.info("check_client_disconnected")
            signal.cancel(REASON_DISCONNECTED)
            return
        try:
            await asyncio.wait_for(signal.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            continue


def create_app(
    *,
    settings: AppSettings | None = None,
    registry: RoleRegistry | None = None,
    chat_model: ChatModel | None = None,
) -> FastAPI:
    """FastAPIアプリケーションを構築して返す。

    ``registry`` を渡さない場合は組み込みロールを登録した登録簿を作る。
    """

    setup_logging()
    resolved = settings or AppSettings.from_env()

    owned_client: OpenAICompatibleClient | None = None
    if registry is None:
        registry = RoleRegistry()
        model = chat_model
        if model is None:
            owned_client = OpenAICompatibleClient(resolved.llm)
            model = owned_client
        register_builtin_roles(registry, model, basic_config=resolved.basic, fluent_config=resolved.fluent)

    service = CheckService(PipelineExecutor(registry), resolved)
    limiter = (
        KeyedRateLimiter.per_minute(resolved.api_rate_limit_per_min)
        if resolved.api_rate_limit_per_min > 0
        else None
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()

    app = FastAPI(title="Chinese Proofreading", lifespan=lifespan)
    app.state.settings = resolved
    app.state.registry = registry
    app.state.check_service = service

    @app.get("/healthz")
    async def health_check() -> dict[str, str]:
        """死活監視用エンドポイント。"""

        return {"status": "ok"}

    @app.get("/api/roles", response_model=list[RoleInfoPayload], response_model_by_alias=True)
    async def list_roles() -> list[RoleInfoPayload]:
        return [RoleInfoPayload.from_role(role) for role in registry.list_roles()]

    @app.post("/api/check", response_model=CheckResponsePayload, response_model_by_alias=True)
    async def check_endpoint(payload: CheckRequestPayload, request: Request, response: Response):
        """本文を校正する。Accept に text/event-stream があれば SSE で逐次返す。"""

        request_id = request.headers.get("x-request-id") or new_request_id()
        if limiter is not None and not limiter.allow(_client_key(request)):
            logger.info("check_rate_limited: client=%s", _client_key(request))
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMITED_MESSAGE},
                headers={"Retry-After": "1", "X-Request-Id": request_id},
            )

        pipeline = payload.options.entries()
        enabled_types = payload.options.enabled_types

        if _wants_event_stream(request):
            signal = CancelSignal()

            async def event_stream() -> AsyncIterator[str]:
                set_request_context(request_id)
                events = service.events(
                    payload.text,
                    pipeline=pipeline,
                    enabled_types=enabled_types,
                    signal=signal,
                    request_id=request_id,
                )
                async for frame in stream_sse(
                    events,
                    signal=signal,
                    heartbeat_s=resolved.sse_heartbeat_s,
                    is_disconnected=request.is_disconnected,
                ):
                    yield frame

            return StreamingResponse(
                event_stream(),
                media_type="text/event-stream",
                headers={**SSE_HEADERS, "X-Request-Id": request_id},
            )

        signal = CancelSignal()
        with request_context(request_id):
            watcher = asyncio.create_task(_watch_disconnect(request, signal, resolved.disconnect_poll_s))
            try:
                outcome = await service.check(
                    payload.text,
                    pipeline=pipeline,
                    enabled_types=enabled_types,
                    signal=signal,
                    request_id=request_id,
                )
            except Cancelled as exc:
                timed_out = exc.reason == REASON_TIMEOUT
                message = timeout_message(resolved.analyze_timeout_ms) if timed_out else MESSAGE_ABORTED
                return JSONResponse(
                    status_code=504,
                    content={"error": message, "code": "timeout" if timed_out else "aborted"},
                    headers={"X-Request-Id": request_id},
                )
            except Exception as exc:  # noqa: BLE001 - 想定外エラーは 500 として返す
                logger.exception("check_endpoint_failed")
                raise HTTPException(status_code=500, detail=MESSAGE_INTERNAL) from exc
            finally:
                watcher.cancel()
                try:
                    await watcher
                except asyncio.CancelledError:
                    pass

        response.headers["X-Request-Id"] = request_id
        return CheckResponsePayload(
            errors=[ErrorItemPayload(**error) for error in outcome.errors],
            meta=outcome.meta,
            patched_text=outcome.patched_text,
        )

    @app.post("/api/apply-suggestion", response_model=ApplySuggestionResponsePayload, response_model_by_alias=True)
    async def apply_suggestion_endpoint(payload: ApplySuggestionRequestPayload) -> ApplySuggestionResponsePayload:
        """1 件の提案を本文へ適用する。"""

        error = payload.error
        if payload.text is None or error is None or error.text is None or error.suggestion is None:
            raise HTTPException(status_code=400, detail="缺少必要参数")

        start = error.start if error.start is not None else -1
        end = error.end if error.end is not None else -1
        item = ErrorItem(start=start, end=end, text=error.text, suggestion=error.suggestion)
        return ApplySuggestionResponsePayload(new_text=apply_suggestion(payload.text, item))

    return app


__all__ = ["create_app"]
