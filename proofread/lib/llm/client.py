from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from proofread.config.defaults import (
    DEFAULT_LLM_BASE_URL,
    DEFAULT_LLM_MAX_RETRIES,
    DEFAULT_LLM_MAX_TOKENS,
    DEFAULT_LLM_MODEL,
    DEFAULT_LLM_TEMPERATURE,
    DEFAULT_LLM_TIMEOUT_MS,
)
from proofread.config.env import env_float, env_int, env_str
from proofread.lib.cancel import CancelSignal

from .exceptions import LLMConfigError, LLMRequestError, LLMResponseError, LLMTimeoutError
from .guard import GuardConfig, LLMGuard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMSettings:
    """OpenAI 互換 Chat Completions API への接続設定。"""

    api_key: str | None = None
    base_url: str = DEFAULT_LLM_BASE_URL
    model: str = DEFAULT_LLM_MODEL
    temperature: float = DEFAULT_LLM_TEMPERATURE
    max_tokens: int = DEFAULT_LLM_MAX_TOKENS
    timeout_ms: int = DEFAULT_LLM_TIMEOUT_MS
    max_retries: int = DEFAULT_LLM_MAX_RETRIES

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            api_key=env_str("OPENAI_API_KEY"),
            base_url=env_str("OPENAI_BASE_URL", DEFAULT_LLM_BASE_URL) or DEFAULT_LLM_BASE_URL,
            model=env_str("OPENAI_MODEL", DEFAULT_LLM_MODEL) or DEFAULT_LLM_MODEL,
            temperature=env_float("OPENAI_TEMPERATURE", DEFAULT_LLM_TEMPERATURE),
            max_tokens=env_int("OPENAI_MAX_TOKENS", DEFAULT_LLM_MAX_TOKENS),
            timeout_ms=env_int("OPENAI_TIMEOUT_MS", DEFAULT_LLM_TIMEOUT_MS),
            max_retries=max(0, env_int("OPENAI_MAX_RETRIES", DEFAULT_LLM_MAX_RETRIES)),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatModel(Protocol):
    """エージェントが依存するチャットモデルの最小インターフェース。"""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        signal: CancelSignal | None = None,
    ) -> str: ...


class OpenAICompatibleClient:
    """httpx で ``/chat/completions`` を呼び出すクライアント。"""

    def __init__(
        self,
        settings: LLMSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        guard: LLMGuard | None = None,
    ) -> None:
        self.settings = settings or LLMSettings.from_env()
        self._http = http_client
        self._owns_http = http_client is None
        if guard is None:
            base = GuardConfig.from_env()
            guard = LLMGuard(
                GuardConfig(
                    retries=self.settings.max_retries,
                    timeout_s=self.settings.timeout_ms / 1000.0,
                    factor=base.factor,
                    min_delay_s=base.min_delay_s,
                    max_delay_s=base.max_delay_s,
                    jitter=base.jitter,
                    rate_capacity=base.rate_capacity,
                    rate_refill_per_sec=base.rate_refill_per_sec,
                )
            )
        self.guard = guard

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.timeout_ms / 1000.0))
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        signal: CancelSignal | None = None,
    ) -> str:
        if not self.settings.configured:
            raise LLMConfigError("OPENAI_API_KEY が設定されていません。")

        payload: dict[str, Any] = {
            "model": model or self.settings.model,
            "messages": [message.as_dict() for message in messages],
            "temperature": self.settings.temperature if temperature is None else temperature,
            "max_tokens": self.settings.max_tokens if max_tokens is None else max_tokens,
        }

        async def _invoke() -> str:
            return await self._post_once(payload)

        return await self.guard.run(_invoke, operation=f"chat:{payload['model']}", signal=signal)

    async def _post_once(self, payload: dict[str, Any]) -> str:
        url = f"{self.settings.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client().post(url, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise LLMRequestError(f"LLM API が HTTP {status} を返しました。", status_code=status) from exc
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError("LLM API の応答がタイムアウトしました。") from exc
        except httpx.RequestError as exc:  # ネットワークエラー
            raise LLMRequestError("LLM API への接続に失敗しました。") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseError("LLM API の応答が JSON ではありません。") from exc
        content = _extract_content(data)
        if content is None:
            raise LLMResponseError("LLM API の応答を解釈できませんでした。")
        return content


def _extract_content(data: object) -> str | None:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    text = first.get("text")
    return text if isinstance(text, str) else None


__all__ = ["ChatMessage", "ChatModel", "LLMSettings", "OpenAICompatibleClient"]
