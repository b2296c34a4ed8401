from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from proofread.config.env import env_bool, env_float, env_int
from proofread.lib.errors.types import ErrorItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentFilterConfig:
    """LLM 出力の採否を決めるエージェント単位の設定。"""

    require_exact_index: bool = False
    allow_locate_fallback: bool = True
    min_confidence: float | None = None
    max_output: int = 200

    @classmethod
    def from_env(cls, prefix: str, *, min_confidence: float | None = None) -> "AgentFilterConfig":
        """``{prefix}_REQUIRE_EXACT_INDEX`` などの環境変数から読み込む。"""

        threshold = min_confidence
        if min_confidence is not None:
            threshold = env_float(f"{prefix}_MIN_CONFIDENCE", min_confidence)
        return cls(
            require_exact_index=env_bool(f"{prefix}_REQUIRE_EXACT_INDEX", False),
            allow_locate_fallback=env_bool(f"{prefix}_ALLOW_LOCATE_FALLBACK", True),
            min_confidence=threshold,
            max_output=max(0, env_int(f"{prefix}_MAX_OUTPUT", 200)),
        )

    def apply(self, items: Sequence[ErrorItem]) -> list[ErrorItem]:
        selected = list(items)
        if self.require_exact_index:
            selected = [item for item in selected if item.metadata.get("locate") == "exact"]
        if self.min_confidence is not None:
            threshold = self.min_confidence
            selected = [
                item for item in selected if item.confidence is not None and item.confidence >= threshold
            ]
        return selected[: self.max_output]


@dataclass(frozen=True)
class AgentResult:
    items: tuple[ErrorItem, ...] = ()
    raw_output: str | None = None
    error: str | None = None
    decisions: tuple[dict[str, Any], ...] = field(default_factory=tuple)


def items_to_prompt_json(items: Sequence[ErrorItem]) -> str:
    """プロンプトへ埋め込む候補一覧 (メタデータ抜き)。"""

    rows = [
        {
            "id": item.id,
            "text": item.text,
            "start": item.start,
            "end": item.end,
            "suggestion": item.suggestion,
            "type": item.type,
            "explanation": item.explanation,
        }
        for item in items
    ]
    return json.dumps(rows, ensure_ascii=False, indent=2)


__all__ = ["AgentFilterConfig", "AgentResult", "items_to_prompt_json"]
