"""リクエスト単位の診断情報。"""
from __future__ import annotations

from .request_context import (
    get_request_id,
    new_request_id,
    request_context,
    reset_request_context,
    set_request_context,
)

__all__ = [
    "get_request_id",
    "new_request_id",
    "request_context",
    "reset_request_context",
    "set_request_context",
]
