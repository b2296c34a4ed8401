from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

_SENTENCE_END = re.compile(r"[。！？!?…]+[”」』）)]*|\n+")


@dataclass(frozen=True)
class Segment:
    start: int
    end: int
    text: str


def split_sentences(text: str) -> List[Segment]:
    """句末記号・改行で区切った文を原文オフセット付きで返す。空白だけの文は除く。"""

    segments: List[Segment] = []
    cursor = 0
    for match in _SENTENCE_END.finditer(text):
        end = match.end()
        if text[cursor:end].strip():
            segments.append(Segment(start=cursor, end=end, text=text[cursor:end]))
        cursor = end
    if cursor < len(text) and text[cursor:].strip():
        segments.append(Segment(start=cursor, end=len(text), text=text[cursor:]))
    return segments


__all__ = ["Segment", "split_sentences"]
