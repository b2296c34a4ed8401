"""OpenAI 互換 LLM の呼び出しと出力解析。"""
from __future__ import annotations

from .client import ChatMessage, ChatModel, LLMSettings, OpenAICompatibleClient
from .exceptions import LLMConfigError, LLMError, LLMRequestError, LLMResponseError, LLMTimeoutError
from .guard import GuardConfig, LLMGuard, is_retryable
from .output import extract_json_array, to_error_items

__all__ = [
    "ChatMessage",
    "ChatModel",
    "GuardConfig",
    "LLMConfigError",
    "LLMError",
    "LLMGuard",
    "LLMRequestError",
    "LLMResponseError",
    "LLMSettings",
    "LLMTimeoutError",
    "OpenAICompatibleClient",
    "extract_json_array",
    "is_retryable",
    "to_error_items",
]
