from __future__ import annotations


class LLMError(RuntimeError):
    """LLM 呼び出しの失敗を表す例外。"""


class LLMConfigError(LLMError):
    """API キー未設定など、呼び出し前に判明する設定不備。"""


class LLMRequestError(LLMError):
    """HTTP 応答が失敗、または接続できなかった場合の例外。"""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMTimeoutError(LLMError):
    """1 回の呼び出しが制限時間を超えた場合の例外。"""


class LLMResponseError(LLMError):
    """応答本文を解釈できなかった場合の例外。"""


__all__ = [
    "LLMConfigError",
    "LLMError",
    "LLMRequestError",
    "LLMResponseError",
    "LLMTimeoutError",
]
