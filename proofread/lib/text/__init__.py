"""テキストへのパッチ適用と文分割。"""
from __future__ import annotations

from .patch import PatchResult, apply_error_items, apply_suggestion
from .segments import Segment, split_sentences

__all__ = ["PatchResult", "Segment", "apply_error_items", "apply_suggestion", "split_sentences"]
