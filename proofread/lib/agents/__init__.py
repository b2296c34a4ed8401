"""LLM を用いた誤り検出エージェント群。"""
from __future__ import annotations

from .base import AgentFilterConfig, AgentResult
from .basic import BASIC_TYPES, BasicErrorAgent
from .fluent import FluentAgent
from .reviewer import ReviewDecision, ReviewerAgent, apply_decisions

__all__ = [
    "AgentFilterConfig",
    "AgentResult",
    "BASIC_TYPES",
    "BasicErrorAgent",
    "FluentAgent",
    "ReviewDecision",
    "ReviewerAgent",
    "apply_decisions",
]
