from __future__ import annotations

DEFAULT_PIPELINE_SPEC = "basic*1,fluent*1,reviewer*1"
"""WORKFLOW_PIPELINE 未設定時に利用するパイプライン。"""

DEFAULT_LLM_MODEL = "Doubao-1.5-lite-32k"
"""OpenAI 互換エンドポイントで利用する既定モデル名。"""

DEFAULT_LLM_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LLM_TEMPERATURE = 0.2
DEFAULT_LLM_MAX_TOKENS = 1024
DEFAULT_LLM_TIMEOUT_MS = 30_000
DEFAULT_LLM_MAX_RETRIES = 2

DEFAULT_ANALYZE_TIMEOUT_MS = 60_000
"""1 リクエスト全体 (パイプライン完走まで) の上限時間。"""

DEFAULT_SSE_HEARTBEAT_S = 15.0
"""SSE の keep-alive コメントを送る間隔 (秒)。"""

DEFAULT_DISCONNECT_POLL_S = 0.5
"""JSON 応答の待機中にクライアント切断を確認する間隔 (秒)。"""

DEFAULT_TYPE_PRIORITY: dict[str, int] = {
    "spelling": 4,
    "punctuation": 3,
    "grammar": 2,
    "fluency": 1,
}
"""マージ時の誤り種別の優先度。大きいほど優先。"""

DEFAULT_API_RATE_LIMIT_PER_MIN = 60
"""/api/check に対する IP 単位のリクエスト上限 (毎分)。"""

DEFAULT_LLM_RATE_CAPACITY = 5
DEFAULT_LLM_RATE_REFILL_PER_SEC = 5.0

DEFAULT_CLIENT_MAX_RETRIES = 3
DEFAULT_CLIENT_IDLE_MS = 20_000
DEFAULT_CLIENT_BASE_DELAY_MS = 600
DEFAULT_CLIENT_TOTAL_TIMEOUT_MS = 60_000
DEFAULT_CLIENT_BACKOFF_MIN_MS = 400
DEFAULT_CLIENT_BACKOFF_MAX_MS = 8_000


__all__ = [
    "DEFAULT_PIPELINE_SPEC",
    "DEFAULT_LLM_MODEL",
    "DEFAULT_LLM_BASE_URL",
    "DEFAULT_LLM_TEMPERATURE",
    "DEFAULT_LLM_MAX_TOKENS",
    "DEFAULT_LLM_TIMEOUT_MS",
    "DEFAULT_LLM_MAX_RETRIES",
    "DEFAULT_ANALYZE_TIMEOUT_MS",
    "DEFAULT_SSE_HEARTBEAT_S",
    "DEFAULT_DISCONNECT_POLL_S",
    "DEFAULT_TYPE_PRIORITY",
    "DEFAULT_API_RATE_LIMIT_PER_MIN",
    "DEFAULT_LLM_RATE_CAPACITY",
    "DEFAULT_LLM_RATE_REFILL_PER_SEC",
    "DEFAULT_CLIENT_MAX_RETRIES",
    "DEFAULT_CLIENT_IDLE_MS",
    "DEFAULT_CLIENT_BASE_DELAY_MS",
    "DEFAULT_CLIENT_TOTAL_TIMEOUT_MS",
    "DEFAULT_CLIENT_BACKOFF_MIN_MS",
    "DEFAULT_CLIENT_BACKOFF_MAX_MS",
]
