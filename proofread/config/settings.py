from __future__ import annotations

from dataclasses import dataclass, field

from proofread.config.defaults import (
    DEFAULT_ANALYZE_TIMEOUT_MS,
    DEFAULT_API_RATE_LIMIT_PER_MIN,
    DEFAULT_DISCONNECT_POLL_S,
    DEFAULT_PIPELINE_SPEC,
    DEFAULT_SSE_HEARTBEAT_S,
)
from proofread.config.env import env_bool, env_float, env_int, env_str
from proofread.lib.agents.base import AgentFilterConfig
from proofread.lib.errors.merge import MergeOptions
from proofread.lib.llm.client import LLMSettings
from proofread.lib.roles.types import PipelineEntry, parse_pipeline_spec


@dataclass(frozen=True)
class AppSettings:
    """サーバー・CLI が共有する設定一式。"""

    pipeline: tuple[PipelineEntry, ...] = field(default_factory=lambda: parse_pipeline_spec(DEFAULT_PIPELINE_SPEC))
    merge: MergeOptions = field(default_factory=MergeOptions)
    analyze_timeout_ms: int = DEFAULT_ANALYZE_TIMEOUT_MS
    sse_heartbeat_s: float = DEFAULT_SSE_HEARTBEAT_S
    disconnect_poll_s: float = DEFAULT_DISCONNECT_POLL_S
    api_rate_limit_per_min: int = DEFAULT_API_RATE_LIMIT_PER_MIN
    review_fallback_on_empty: bool = True
    log_payload: bool = False
    llm: LLMSettings = field(default_factory=LLMSettings)
    basic: AgentFilterConfig = field(default_factory=lambda: AgentFilterConfig(min_confidence=0.9))
    fluent: AgentFilterConfig = field(default_factory=AgentFilterConfig)

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            pipeline=parse_pipeline_spec(env_str("WORKFLOW_PIPELINE", DEFAULT_PIPELINE_SPEC)),
            merge=MergeOptions.from_env(),
            analyze_timeout_ms=max(0, env_int("ANALYZE_TIMEOUT_MS", DEFAULT_ANALYZE_TIMEOUT_MS)),
            sse_heartbeat_s=max(0.1, env_float("SSE_HEARTBEAT_S", DEFAULT_SSE_HEARTBEAT_S)),
            disconnect_poll_s=max(0.01, env_float("DISCONNECT_POLL_S", DEFAULT_DISCONNECT_POLL_S)),
            api_rate_limit_per_min=max(0, env_int("API_RATE_LIMIT_PER_MIN", DEFAULT_API_RATE_LIMIT_PER_MIN)),
            review_fallback_on_empty=env_bool("REVIEW_FALLBACK_ON_EMPTY", True),
            log_payload=env_bool("LOG_ENABLE_PAYLOAD", False),
            llm=LLMSettings.from_env(),
            basic=AgentFilterConfig.from_env("BASIC", min_confidence=0.9),
            fluent=AgentFilterConfig.from_env("FLUENT"),
        )


__all__ = ["AppSettings"]
