"""誤り候補のデータモデルとマージ処理。"""
from __future__ import annotations

from .merge import MergeOptions, merge_errors, parse_type_priority
from .sources import attach_sources, get_sources, normalize_agent
from .types import (
    ERROR_TYPES,
    ErrorItem,
    ErrorType,
    ItemValidationError,
    items_from_dicts,
    items_to_dicts,
    new_item_id,
)

__all__ = [
    "ERROR_TYPES",
    "ErrorItem",
    "ErrorType",
    "ItemValidationError",
    "MergeOptions",
    "attach_sources",
    "get_sources",
    "items_from_dicts",
    "items_to_dicts",
    "merge_errors",
    "new_item_id",
    "normalize_agent",
    "parse_type_priority",
]
