"""正規表現ベースの誤り検出。"""
from __future__ import annotations

from .dictionaries import builtin_rules
from .engine import RULE_SOURCE, Rule, RuleEngine, default_rule_engine

__all__ = ["RULE_SOURCE", "Rule", "RuleEngine", "builtin_rules", "default_rule_engine"]
