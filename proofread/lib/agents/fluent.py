from __future__ import annotations

import logging

from proofread.lib.cancel import CancelSignal
from proofread.lib.errors.types import ErrorType
from proofread.lib.llm import ChatMessage, ChatModel, extract_json_array, to_error_items

from .base import AgentFilterConfig, AgentResult
from .prompts import FLUENT_HUMAN_PROMPT, FLUENT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class FluentAgent:
    """意味を変えずに読みやすさを改善できる箇所 (fluency) を検出する。"""

    name = "FluentAgent"

    def __init__(self, model: ChatModel, config: AgentFilterConfig | None = None) -> None:
        self.model = model
        self.config = config or AgentFilterConfig()

    def build_messages(self, text: str) -> list[ChatMessage]:
        return [
            ChatMessage("system", FLUENT_SYSTEM_PROMPT.format()),
            ChatMessage("user", FLUENT_HUMAN_PROMPT.format(text=text)),
        ]

    async def call(
        self,
        text: str,
        *,
        model_name: str | None = None,
        signal: CancelSignal | None = None,
    ) -> AgentResult:
        raw_output = await self.model.complete(self.build_messages(text), model=model_name, signal=signal)
        items = to_error_items(
            extract_json_array(raw_output),
            enforced_type=ErrorType.FLUENCY.value,
            original_text=text,
            allow_locate_by_unique_text=self.config.allow_locate_fallback,
        )
        selected = self.config.apply(items)
        logger.debug("fluent_agent_result: parsed=%d selected=%d", len(items), len(selected))
        return AgentResult(items=tuple(selected), raw_output=raw_output)


__all__ = ["FluentAgent"]
