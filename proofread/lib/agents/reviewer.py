from __future__ import annotations

import logging
from typing import Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from proofread.lib.cancel import CancelSignal
from proofread.lib.errors.types import ErrorItem
from proofread.lib.llm import ChatMessage, ChatModel, extract_json_array

from .base import AgentResult, items_to_prompt_json
from .prompts import REVIEW_HUMAN_PROMPT, REVIEW_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class ReviewDecision(BaseModel):
    """候補 1 件に対する審査結果。``modify`` のときだけ区間を差し替えられる。"""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: Literal["accept", "reject", "modify"]
    start: int | None = None
    end: int | None = None
    suggestion: str | None = None
    explanation: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _validate_span(self) -> "ReviewDecision":
        if self.start is not None and self.end is not None:
            if self.start < 0 or self.end <= self.start:
                raise ValueError("invalid span: require 0 <= start < end")
        return self


def apply_decisions(
    text: str,
    candidates: Sequence[ErrorItem],
    decisions: Sequence[ReviewDecision],
) -> list[ErrorItem]:
    """審査結果を候補へ反映する。reject と範囲外の区間は捨てる。"""

    index = {candidate.id: candidate for candidate in candidates}
    refined: list[ErrorItem] = []
    for decision in decisions:
        base = index.get(decision.id)
        if base is None or decision.status == "reject":
            continue
        start = base.start if decision.start is None else decision.start
        end = base.end if decision.end is None else decision.end
        if not (0 <= start < end <= len(text)):
            continue
        reviewer_meta: dict[str, object] = {"status": decision.status}
        if decision.confidence is not None:
            reviewer_meta["confidence"] = decision.confidence
        refined.append(
            ErrorItem(
                id=base.id,
                start=start,
                end=end,
                text=text[start:end],
                suggestion=base.suggestion if decision.suggestion is None else decision.suggestion,
                type=base.type,
                explanation=base.explanation if decision.explanation is None else decision.explanation,
                metadata={**dict(base.metadata), "reviewer": reviewer_meta},
            )
        )
    return refined


class ReviewerAgent:
    """前段の候補を LLM に審査させ、採用・修正された項目だけを返す。"""

    name = "ReviewerAgent"

    def __init__(self, model: ChatModel) -> None:
        self.model = model

    def build_messages(self, text: str, candidates: Sequence[ErrorItem]) -> list[ChatMessage]:
        return [
            ChatMessage("system", REVIEW_SYSTEM_PROMPT),
            ChatMessage(
                "user",
                REVIEW_HUMAN_PROMPT.format(text=text, candidates=items_to_prompt_json(candidates)),
            ),
        ]

    async def call(
        self,
        text: str,
        candidates: Sequence[ErrorItem],
        *,
        model_name: str | None = None,
        signal: CancelSignal | None = None,
    ) -> AgentResult:
        if not candidates:
            return AgentResult(items=(), raw_output=None)

        raw_output = await self.model.complete(
            self.build_messages(text, candidates), model=model_name, signal=signal
        )
        decisions: list[ReviewDecision] = []
        for raw in extract_json_array(raw_output):
            try:
                decisions.append(ReviewDecision.model_validate(raw))
            except ValidationError:
                continue

        refined = apply_decisions(text, candidates, decisions)
        logger.debug(
            "reviewer_agent_result: candidates=%d decisions=%d accepted=%d",
            len(candidates),
            len(decisions),
            len(refined),
        )
        return AgentResult(
            items=tuple(refined),
            raw_output=raw_output,
            decisions=tuple(decision.model_dump(exclude_none=True) for decision in decisions),
        )


__all__ = ["ReviewDecision", "ReviewerAgent", "apply_decisions"]
