"""協調的キャンセル用のシグナルと例外。"""
from __future__ import annotations

from .token import CancelSignal, Cancelled, abortable, sleep

__all__ = ["CancelSignal", "Cancelled", "abortable", "sleep"]
