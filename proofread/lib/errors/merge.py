from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from proofread.config.defaults import DEFAULT_TYPE_PRIORITY
from proofread.config.env import env_bool, env_str

from .types import ErrorItem

logger = logging.getLogger(__name__)


def parse_type_priority(raw: str | None) -> dict[str, int]:
    """``"spelling:4,punctuation:3"`` 形式の優先度指定を辞書にする。"""

    priority = dict(DEFAULT_TYPE_PRIORITY)
    if not raw:
        return priority
    for token in raw.split(","):
        name, sep, value = token.partition(":")
        name = name.strip().lower()
        if not sep or not name:
            continue
        try:
            priority[name] = int(value.strip())
        except ValueError:
            logger.warning("merge_priority_invalid: token=%r", token)
    return priority


@dataclass(frozen=True)
class MergeOptions:
    confidence_first: bool = True
    type_priority: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_TYPE_PRIORITY))

    @classmethod
    def from_env(cls) -> "MergeOptions":
        return cls(
            confidence_first=env_bool("MERGE_CONFIDENCE_FIRST", True),
            type_priority=parse_type_priority(env_str("MERGE_TYPE_PRIORITY")),
        )

    def priority_of(self, item: ErrorItem) -> int:
        return int(self.type_priority.get(item.type, 0))


def _is_valid(item: ErrorItem, text: str) -> bool:
    if item.start < 0 or item.end <= item.start or item.end > len(text):
        return False
    if not item.text:
        return False
    return text[item.start : item.end] == item.text


def _explanation_length(item: ErrorItem) -> int:
    return len(item.explanation.strip())


def _confidence_order(a: ErrorItem, b: ErrorItem, options: MergeOptions) -> int:
    """両方に信頼度があり差がある場合のみ 1 / -1 を返す。"""

    if not options.confidence_first:
        return 0
    ca, cb = a.confidence, b.confidence
    if ca is None or cb is None or ca == cb:
        return 0
    return 1 if ca > cb else -1


def _prefer_duplicate(current: ErrorItem, candidate: ErrorItem, options: MergeOptions) -> ErrorItem:
    """同一キーの重複から 1 件を選ぶ。同点なら先に現れた方を残す。"""

    order = _confidence_order(candidate, current, options)
    if order:
        return candidate if order > 0 else current

    pc, pn = options.priority_of(current), options.priority_of(candidate)
    if pc != pn:
        return candidate if pn > pc else current

    ec, en = _explanation_length(current), _explanation_length(candidate)
    if ec != en:
        return candidate if en > ec else current
    return current


def _prefer_overlap(current: ErrorItem, candidate: ErrorItem, options: MergeOptions) -> ErrorItem:
    """重なり合う 2 件のうち残す方を選ぶ。決着しなければ ``current``。"""

    order = _confidence_order(candidate, current, options)
    if order:
        return candidate if order > 0 else current

    if candidate.length != current.length:
        return candidate if candidate.length < current.length else current

    ec, en = _explanation_length(current), _explanation_length(candidate)
    if ec != en:
        return candidate if en > ec else current

    pc, pn = options.priority_of(current), options.priority_of(candidate)
    if pc != pn:
        return candidate if pn > pc else current
    return current


def merge_errors(
    text: str,
    groups: Iterable[Sequence[ErrorItem]],
    options: MergeOptions | None = None,
) -> list[ErrorItem]:
    """複数ソースの誤り候補を検証・重複除去・重なり解消して 1 本にまとめる。

    戻り値は ``(start, end)`` 昇順で互いに重ならず、各要素は
    ``text[start:end] == item.text`` を満たす。
    """

    opts = options or MergeOptions()

    deduped: dict[tuple[int, int, str], ErrorItem] = {}
    dropped = 0
    for group in groups:
        for item in group:
            if not _is_valid(item, text):
                dropped += 1
                continue
            key = item.key()
            existing = deduped.get(key)
            deduped[key] = item if existing is None else _prefer_duplicate(existing, item, opts)

    ordered = sorted(deduped.values(), key=lambda item: (item.start, item.end))

    resolved: list[ErrorItem] = []
    current: ErrorItem | None = None
    for item in ordered:
        if current is None:
            current = item
            continue
        if item.start < current.end:
            current = _prefer_overlap(current, item, opts)
            continue
        resolved.append(current)
        current = item
    if current is not None:
        resolved.append(current)

    if dropped:
        logger.debug("merge_dropped_invalid: count=%d", dropped)
    return resolved


__all__ = ["MergeOptions", "merge_errors", "parse_type_priority"]
