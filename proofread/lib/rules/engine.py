from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from proofread.lib.errors.types import ErrorItem

logger = logging.getLogger(__name__)

RULE_SOURCE = "rule_engine"


@dataclass(frozen=True)
class Rule:
    """正規表現 1 本で表す検出規則。"""

    id: str
    name: str
    type: str
    pattern: re.Pattern[str]
    replacement: str
    confidence: float
    description: str
    enabled: bool = True

    @classmethod
    def literal(
        cls,
        id: str,
        wrong: str,
        correct: str,
        *,
        type: str,
        description: str,
        confidence: float = 0.9,
        name: str | None = None,
    ) -> "Rule":
        return cls(
            id=id,
            name=name or id,
            type=type,
            pattern=re.compile(re.escape(wrong)),
            replacement=correct.replace("\\", "\\\\"),
            confidence=confidence,
            description=description,
        )

    def suggest(self, match: re.Match[str]) -> str:
        return match.expand(self.replacement)


class RuleEngine:
    """登録済みの規則で原文を走査し、誤り候補を返す。"""

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: List[Rule] = []
        if rules is not None:
            for rule in rules:
                self.add_rule(rule)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: Rule) -> None:
        if any(existing.id == rule.id for existing in self._rules):
            raise ValueError(f"duplicate rule id: {rule.id}")
        self._rules.append(rule)

    def detect(self, text: str, enabled_types: Sequence[str] | None = None) -> List[ErrorItem]:
        allowed = set(enabled_types) if enabled_types else None
        results: List[ErrorItem] = []
        seen: set[tuple[int, int, str]] = set()

        for rule in self._rules:
            if not rule.enabled:
                continue
            if allowed is not None and rule.type not in allowed:
                continue
            for match in rule.pattern.finditer(text):
                start, end = match.span()
                if end <= start:
                    continue
                suggestion = rule.suggest(match)
                if suggestion == match.group(0):
                    continue
                key = (start, end, match.group(0))
                if key in seen:
                    continue
                seen.add(key)
                results.append(
                    ErrorItem(
                        id=f"rule_{rule.id}_{start}_{end}",
                        start=start,
                        end=end,
                        text=match.group(0),
                        suggestion=suggestion,
                        type=rule.type,
                        explanation=rule.description,
                        metadata={"source": RULE_SOURCE, "ruleId": rule.id, "confidence": rule.confidence},
                    )
                )

        logger.debug("rules_detected: rules=%d items=%d", len(self._rules), len(results))
        return results

    def stats(self) -> dict[str, object]:
        by_type: dict[str, int] = {}
        for rule in self._rules:
            by_type[rule.type] = by_type.get(rule.type, 0) + 1
        return {
            "total": len(self._rules),
            "enabled": sum(1 for rule in self._rules if rule.enabled),
            "byType": by_type,
        }


def default_rule_engine() -> RuleEngine:
    from .dictionaries import builtin_rules

    return RuleEngine(builtin_rules())


__all__ = ["RULE_SOURCE", "Rule", "RuleEngine", "default_rule_engine"]
