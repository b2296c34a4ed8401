from __future__ import annotations

import re
import unittest

from proofread.lib.rules import RULE_SOURCE, Rule, RuleEngine, default_rule_engine


class RuleEngineTests(unittest.TestCase):
    def test_builtin_rules_detect_punctuation_and_homophones(self) -> None:
        text = "太好了！！！我们在见吧"

        items = default_rule_engine().detect(text)

        by_rule = {item.metadata["ruleId"]: item for item in items}
        exclaim = by_rule["duplicate_exclamation"]
        self.assertEqual((exclaim.start, exclaim.end, exclaim.suggestion), (3, 6, "！"))
        homophone = by_rule["homophone_0"]
        self.assertEqual(text[homophone.start : homophone.end], "在见")
        self.assertEqual(homophone.suggestion, "再见")
        self.assertEqual(homophone.metadata["source"], RULE_SOURCE)
        self.assertEqual(homophone.id, f"rule_homophone_0_{homophone.start}_{homophone.end}")

    def test_halfwidth_comma_between_cjk_only(self) -> None:
        items = default_rule_engine().detect("你好,世界 hello,world")

        commas = [item for item in items if item.metadata["ruleId"] == "halfwidth_comma"]
        self.assertEqual([(c.start, c.end, c.suggestion) for c in commas], [(2, 3, "，")])

    def test_enabled_types_filter_rules(self) -> None:
        items = default_rule_engine().detect("跑的很快！！", enabled_types=["punctuation"])
        self.assertEqual({item.type for item in items}, {"punctuation"})

    def test_noop_matches_are_ignored(self) -> None:
        engine = RuleEngine(
            [Rule(id="same", name="same", type="spelling", pattern=re.compile("好"), replacement="好",
                  confidence=1.0, description="")]
        )
        self.assertEqual(engine.detect("很好"), [])

    def test_duplicate_rule_id_is_rejected(self) -> None:
        rule = Rule.literal("dup", "a", "b", type="spelling", description="")
        engine = RuleEngine([rule])
        with self.assertRaises(ValueError):
            engine.add_rule(rule)

    def test_stats_counts_rules_by_type(self) -> None:
        stats = default_rule_engine().stats()
        self.assertEqual(stats["total"], stats["enabled"])
        self.assertEqual(stats["byType"], {"punctuation": 5, "spelling": 7})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
