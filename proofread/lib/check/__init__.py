"""校正リクエスト 1 件分の実行と結果の取りまとめ。"""
from __future__ import annotations

from .service import CheckOutcome, CheckService, timeout_message

__all__ = ["CheckOutcome", "CheckService", "timeout_message"]
