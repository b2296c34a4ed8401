from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from proofread.lib.errors.types import ErrorItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchResult:
    patched_text: str
    applied: int
    skipped: int


def apply_error_items(text: str, items: Sequence[ErrorItem]) -> PatchResult:
    """原文座標の候補を順に適用し、表示用の修正後テキストを返す。

    不正な区間・先行適用分と重なる区間・長さ不一致の項目は例外にせず
    ``skipped`` に数える。
    """

    if not items:
        return PatchResult(patched_text=text, applied=0, skipped=0)

    ordered = sorted(items, key=lambda item: (item.start, item.end))
    patched = text
    offset = 0
    last_end = -1
    applied = 0
    skipped = 0

    for item in ordered:
        start, end = item.start, item.end
        if start < 0 or end <= start or start < last_end:
            skipped += 1
            continue

        cur_start = start + offset
        cur_end = end + offset
        if cur_start < 0 or cur_end > len(patched):
            skipped += 1
            continue
        if len(patched[cur_start:cur_end]) != len(item.text):
            skipped += 1
            continue

        replacement = item.suggestion or ""
        patched = patched[:cur_start] + replacement + patched[cur_end:]
        offset += len(replacement) - (end - start)
        last_end = end
        applied += 1

    if skipped:
        logger.debug("patch_skipped_items: applied=%d skipped=%d", applied, skipped)
    return PatchResult(patched_text=patched, applied=applied, skipped=skipped)


def apply_suggestion(text: str, item: ErrorItem) -> str:
    """1 件の提案を適用する。区間が一致しなければ最初の出現箇所を置換する。"""

    if item.matches(text):
        return text[: item.start] + item.suggestion + text[item.end :]
    if not item.text:
        return text
    return text.replace(item.text, item.suggestion, 1)


__all__ = ["PatchResult", "apply_error_items", "apply_suggestion"]
