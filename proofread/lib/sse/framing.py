from __future__ import annotations

import json
import logging
from typing import Any, List

logger = logging.getLogger(__name__)


def format_data(payload: Any) -> str:
    """1 イベントを ``data: <json>`` フレームにする。"""

    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_comment(text: str) -> str:
    return f":{text}\n\n"


def parse_event_data(data: str) -> dict[str, Any] | None:
    """``data`` 行の中身を JSON オブジェクトとして解釈する。解釈できなければ None。"""

    stripped = data.strip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug("sse_frame_invalid_json: %r", stripped[:80])
        return None
    return parsed if isinstance(parsed, dict) else None


class SSEDecoder:
    """受信したテキスト断片を空行区切りのフレームに組み立て、``data`` を取り出す。

    コメント行 (``:`` 始まり) と ``data`` 以外のフィールドは読み捨てる。
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[str]:
        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        payloads: List[str] = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            data_lines = [
                line[5:].removeprefix(" ") for line in frame.split("\n") if line.startswith("data:")
            ]
            if data_lines:
                payloads.append("\n".join(data_lines))
        return payloads

    @property
    def pending(self) -> str:
        return self._buffer


__all__ = ["SSEDecoder", "format_comment", "format_data", "parse_event_data"]
