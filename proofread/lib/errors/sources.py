from __future__ import annotations

from typing import Iterable

from .types import ErrorItem

KNOWN_AGENTS: frozenset[str] = frozenset({"basic", "fluent", "reviewer", "rules"})


def normalize_agent(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    return lowered if lowered in KNOWN_AGENTS else None


def get_sources(item: ErrorItem) -> list[str]:
    """``metadata.sources`` → ``metadata.source`` の順で出所を取り出す。"""

    raw = item.metadata.get("sources")
    if isinstance(raw, (list, tuple)):
        return [value for value in (normalize_agent(entry) for entry in raw) if value]
    single = normalize_agent(item.metadata.get("source"))
    return [single] if single else []


def attach_sources(items: Iterable[ErrorItem], *agents: str) -> list[ErrorItem]:
    """既存の出所に ``agents`` を加えた (小文字・重複なし) 項目を返す。"""

    extra = [value for value in (normalize_agent(agent) for agent in agents) if value]
    tagged: list[ErrorItem] = []
    for item in items:
        merged = list(dict.fromkeys([*get_sources(item), *extra]))
        tagged.append(item.with_metadata(sources=merged) if merged else item)
    return tagged


__all__ = ["KNOWN_AGENTS", "attach_sources", "get_sources", "normalize_agent"]
