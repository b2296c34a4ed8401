from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def new_request_id() -> str:
    return uuid.uuid4().hex


def set_request_context(request_id: str | None) -> contextvars.Token[str]:
    return _request_id.set((request_id or "-").strip() or "-")


def reset_request_context(token: contextvars.Token[str]) -> None:
    _request_id.reset(token)


def get_request_id() -> str:
    return _request_id.get()


@contextmanager
def request_context(request_id: str | None) -> Iterator[str]:
    """with ブロックの間だけリクエスト ID をログ文脈へ設定する。"""

    token = set_request_context(request_id)
    try:
        yield get_request_id()
    finally:
        reset_request_context(token)


__all__ = [
    "get_request_id",
    "new_request_id",
    "request_context",
    "reset_request_context",
    "set_request_context",
]
