from __future__ import annotations

import logging
from typing import Sequence

from proofread.lib.cancel import CancelSignal
from proofread.lib.errors.types import ErrorItem, ErrorType
from proofread.lib.llm import ChatMessage, ChatModel, extract_json_array, to_error_items

from .base import AgentFilterConfig, AgentResult, items_to_prompt_json
from .prompts import BASIC_HUMAN_PROMPT, BASIC_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

BASIC_TYPES: tuple[str, ...] = (
    ErrorType.SPELLING.value,
    ErrorType.PUNCTUATION.value,
    ErrorType.GRAMMAR.value,
)


class BasicErrorAgent:
    """拼写・标点・基础语法の客観的な誤りを検出する。"""

    name = "BasicErrorAgent"

    def __init__(self, model: ChatModel, config: AgentFilterConfig | None = None) -> None:
        self.model = model
        self.config = config or AgentFilterConfig(min_confidence=0.9)

    def build_messages(
        self,
        text: str,
        *,
        previous_items: Sequence[ErrorItem] = (),
        patched_text: str = "",
        run_index: int | None = None,
    ) -> list[ChatMessage]:
        system = BASIC_SYSTEM_PROMPT.format(max_output=self.config.max_output)
        human = BASIC_HUMAN_PROMPT.format(
            text=text,
            previous_issues=items_to_prompt_json(previous_items) if previous_items else "",
            patched_text=patched_text,
            run_index="" if run_index is None else str(run_index),
        )
        return [ChatMessage("system", system), ChatMessage("user", human)]

    async def call(
        self,
        text: str,
        *,
        previous_items: Sequence[ErrorItem] = (),
        patched_text: str = "",
        run_index: int | None = None,
        model_name: str | None = None,
        signal: CancelSignal | None = None,
    ) -> AgentResult:
        messages = self.build_messages(
            text, previous_items=previous_items, patched_text=patched_text, run_index=run_index
        )
        raw_output = await self.model.complete(messages, model=model_name, signal=signal)

        collected: list[ErrorItem] = []
        for raw in extract_json_array(raw_output):
            if not isinstance(raw, dict) or raw.get("type") not in BASIC_TYPES:
                continue
            collected.extend(
                to_error_items(
                    [raw],
                    enforced_type=str(raw["type"]),
                    original_text=text,
                    allow_locate_by_unique_text=self.config.allow_locate_fallback,
                )
            )

        selected = self.config.apply(collected)
        logger.debug(
            "basic_agent_result: parsed=%d selected=%d run=%s", len(collected), len(selected), run_index
        )
        return AgentResult(items=tuple(selected), raw_output=raw_output)


__all__ = ["BASIC_TYPES", "BasicErrorAgent"]
