from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from proofread.lib.errors.types import ErrorItem

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json\s*\n(.*?)```", re.IGNORECASE | re.DOTALL)
_ANY_FENCE = re.compile(r"```[A-Za-z0-9_-]*\s*\n(.*?)```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


class RawLLMError(BaseModel):
    """LLM が返す 1 件分の誤り。``description`` と ``explanation`` はどちらか一方でよい。"""

    model_config = ConfigDict(extra="ignore")

    text: str
    start: int
    end: int
    suggestion: str
    description: str | None = None
    explanation: str | None = None
    type: str | None = None
    confidence: float | None = None

    @model_validator(mode="after")
    def _validate_span(self) -> "RawLLMError":
        if self.end <= self.start:
            raise ValueError("end must be greater than start")
        return self


def find_first_top_level_array(text: str) -> str | None:
    """文字列リテラルを考慮した括弧の深さ走査で最初の最上位 JSON 配列を切り出す。"""

    in_string = False
    quote = ""
    escape = False
    depth = 0
    start = -1
    for index, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == quote:
                in_string = False
            continue
        if ch in {'"', "'"}:
            in_string = True
            quote = ch
            continue
        if ch == "[":
            if depth == 0:
                start = index
            depth += 1
        elif ch == "]":
            if depth > 0:
                depth -= 1
            if depth == 0 and start != -1:
                return text[start : index + 1]
    return None


def extract_json_array_string(content: object) -> str | None:
    if isinstance(content, list):
        joined = "".join(
            part if isinstance(part, str) else str(part.get("text", "")) if isinstance(part, dict) else ""
            for part in content
        )
        return extract_json_array_string(joined)
    if isinstance(content, dict):
        return extract_json_array_string(content.get("text"))
    if not isinstance(content, str):
        return None

    stripped = content.strip()
    fenced = _JSON_FENCE.search(stripped)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    any_fenced = _ANY_FENCE.search(stripped)
    if any_fenced and any_fenced.group(1).strip():
        inner = any_fenced.group(1).strip()
        if inner.startswith("[") and inner.endswith("]"):
            return inner
        found = find_first_top_level_array(inner)
        if found:
            return found

    if stripped.startswith("[") and stripped.endswith("]"):
        return stripped
    return find_first_top_level_array(stripped)


def extract_json_array(content: object) -> List[Any]:
    """LLM 出力から JSON 配列を取り出す。見つからなければ空リスト。"""

    snippet = extract_json_array_string(content)
    if not snippet:
        return []
    for candidate in (snippet, _TRAILING_COMMA.sub(r"\1", snippet)):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return parsed if isinstance(parsed, list) else []
    logger.debug("llm_output_unparsable: length=%d", len(snippet))
    return []


def _locate_unique(original: str, text: str) -> int | None:
    if not text:
        return None
    first = original.find(text)
    if first == -1 or first != original.rfind(text):
        return None
    return first


def to_error_items(
    raw_items: Sequence[object],
    *,
    enforced_type: str,
    original_text: str,
    allow_locate_by_unique_text: bool = True,
) -> List[ErrorItem]:
    """検証済みの生データを ErrorItem に変換する。

    区間が原文と一致しない項目は、``allow_locate_by_unique_text`` が真で
    ``text`` が原文にちょうど 1 回だけ現れる場合に限りその位置へ付け替える。
    """

    items: List[ErrorItem] = []
    for raw in raw_items:
        try:
            parsed = RawLLMError.model_validate(raw)
        except ValidationError:
            continue

        start, end = parsed.start, parsed.end
        locate = "exact"
        if start < 0 or end > len(original_text) or original_text[start:end] != parsed.text:
            if not allow_locate_by_unique_text:
                continue
            found = _locate_unique(original_text, parsed.text)
            if found is None:
                continue
            start, end = found, found + len(parsed.text)
            locate = "fallback"

        metadata: dict[str, Any] = {"locate": locate}
        if parsed.confidence is not None:
            metadata["confidence"] = parsed.confidence
        items.append(
            ErrorItem(
                start=start,
                end=end,
                text=parsed.text,
                suggestion=parsed.suggestion,
                type=enforced_type,
                explanation=parsed.description or parsed.explanation or "",
                metadata=metadata,
            )
        )
    return items


__all__ = [
    "RawLLMError",
    "extract_json_array",
    "extract_json_array_string",
    "find_first_top_level_array",
    "to_error_items",
]
