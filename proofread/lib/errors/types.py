from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping


class ErrorType(str, Enum):
    SPELLING = "spelling"
    PUNCTUATION = "punctuation"
    GRAMMAR = "grammar"
    FLUENCY = "fluency"

    @classmethod
    def parse(cls, value: object) -> "ErrorType | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


ERROR_TYPES: tuple[str, ...] = tuple(member.value for member in ErrorType)


class ItemValidationError(ValueError):
    """ErrorItem の復元に失敗した場合の例外。"""


def new_item_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ErrorItem:
    """原文上の半開区間 ``[start, end)`` に対する誤り候補。

    ``text`` は原文の該当部分、``suggestion`` が空文字なら削除を意味する。
    ``type`` は未知の文字列も保持する (マージ時の優先度は 0)。
    """

    start: int
    end: int
    text: str
    suggestion: str = ""
    type: str = ErrorType.SPELLING.value
    explanation: str = ""
    id: str = field(default_factory=new_item_id)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def confidence(self) -> float | None:
        """``metadata.confidence`` (無ければレビュー結果の信頼度) を返す。"""

        value = self.metadata.get("confidence")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        reviewer = self.metadata.get("reviewer")
        if isinstance(reviewer, Mapping):
            value = reviewer.get("confidence")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        return None

    def key(self) -> tuple[int, int, str]:
        return (self.start, self.end, self.text)

    def matches(self, original: str) -> bool:
        """原文の区間が ``text`` と完全一致するか。"""

        return 0 <= self.start < self.end <= len(original) and original[self.start : self.end] == self.text

    def with_metadata(self, **updates: Any) -> "ErrorItem":
        merged = dict(self.metadata)
        merged.update(updates)
        return replace(self, metadata=merged)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "suggestion": self.suggestion,
            "type": self.type,
        }
        if self.explanation:
            payload["explanation"] = self.explanation
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorItem":
        try:
            start = int(data["start"])
            end = int(data["end"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ItemValidationError(f"invalid span: {data!r}") from exc
        text = data.get("text")
        if not isinstance(text, str):
            raise ItemValidationError(f"invalid text: {data!r}")
        metadata = data.get("metadata")
        explanation = data.get("explanation")
        if explanation is None:
            explanation = data.get("description")
        return cls(
            id=str(data.get("id") or new_item_id()),
            start=start,
            end=end,
            text=text,
            suggestion=str(data.get("suggestion") or ""),
            type=str(data.get("type") or ErrorType.SPELLING.value),
            explanation=str(explanation or ""),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


def items_to_dicts(items: Iterable[ErrorItem]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in items]


def items_from_dicts(rows: object) -> list[ErrorItem]:
    """辞書の列から復元できるものだけ ErrorItem にする。"""

    if not isinstance(rows, (list, tuple)):
        return []
    items: list[ErrorItem] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        try:
            items.append(ErrorItem.from_dict(row))
        except ItemValidationError:
            continue
    return items


__all__ = [
    "ERROR_TYPES",
    "ErrorItem",
    "ErrorType",
    "ItemValidationError",
    "items_from_dicts",
    "items_to_dicts",
    "new_item_id",
]
