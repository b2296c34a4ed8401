from __future__ import annotations

import unittest

from proofread.lib.errors import ErrorItem, MergeOptions, merge_errors, parse_type_priority

TEXT = "我今天很高行，天汽也很好。"


def _item(start: int, end: int, *, suggestion: str = "x", type: str = "spelling", explanation: str = "", **meta) -> ErrorItem:
    return ErrorItem(
        start=start,
        end=end,
        text=TEXT[start:end],
        suggestion=suggestion,
        type=type,
        explanation=explanation,
        metadata=meta,
    )


class MergeErrorsTests(unittest.TestCase):
    def test_empty_groups_return_empty_list(self) -> None:
        self.assertEqual(merge_errors(TEXT, []), [])
        self.assertEqual(merge_errors(TEXT, [[], []]), [])

    def test_invalid_items_are_dropped(self) -> None:
        items = [
            ErrorItem(start=4, end=6, text="高兴", suggestion="高兴"),  # 原文と不一致
            ErrorItem(start=-1, end=2, text="我今", suggestion="x"),
            ErrorItem(start=3, end=3, text="", suggestion="x"),
            ErrorItem(start=10, end=40, text="很好", suggestion="x"),
        ]
        self.assertEqual(merge_errors(TEXT, [items]), [])

    def test_duplicates_prefer_higher_confidence(self) -> None:
        low = _item(4, 6, suggestion="高兴", confidence=0.6)
        high = _item(4, 6, suggestion="高星", confidence=0.95)

        merged = merge_errors(TEXT, [[low], [high]])

        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].suggestion, "高星")

    def test_duplicates_fall_back_to_type_priority_then_explanation(self) -> None:
        grammar = _item(4, 6, type="grammar", explanation="很长很长的解释")
        spelling = _item(4, 6, type="spelling")
        self.assertEqual(merge_errors(TEXT, [[grammar, spelling]])[0].type, "spelling")

        short = _item(4, 6, explanation="短")
        long = _item(4, 6, explanation="更详细的说明")
        self.assertEqual(merge_errors(TEXT, [[short], [long]])[0].explanation, "更详细的说明")

    def test_duplicate_tie_keeps_first_seen(self) -> None:
        first = _item(4, 6, suggestion="高兴")
        second = _item(4, 6, suggestion="高星")
        self.assertEqual(merge_errors(TEXT, [[first], [second]])[0].id, first.id)

    def test_overlap_prefers_higher_confidence(self) -> None:
        wide = _item(3, 6, confidence=0.99)
        narrow = _item(4, 6, confidence=0.5)

        merged = merge_errors(TEXT, [[wide, narrow]])

        self.assertEqual([(m.start, m.end) for m in merged], [(3, 6)])

    def test_overlap_prefers_shorter_span_without_confidence(self) -> None:
        wide = _item(3, 6)
        narrow = _item(4, 6)

        merged = merge_errors(TEXT, [[wide], [narrow]])

        self.assertEqual([(m.start, m.end) for m in merged], [(4, 6)])

    def test_confidence_first_can_be_disabled(self) -> None:
        wide = _item(3, 6, confidence=0.99)
        narrow = _item(4, 6, confidence=0.5)

        merged = merge_errors(TEXT, [[wide, narrow]], MergeOptions(confidence_first=False))

        self.assertEqual([(m.start, m.end) for m in merged], [(4, 6)])

    def test_reviewer_confidence_is_used(self) -> None:
        item = ErrorItem(start=4, end=6, text="高行", metadata={"reviewer": {"status": "accept", "confidence": 0.8}})
        self.assertAlmostEqual(item.confidence or 0.0, 0.8)

    def test_output_is_sorted_non_overlapping_and_matches_text(self) -> None:
        groups = [
            [_item(7, 9, suggestion="天气"), _item(4, 6, suggestion="高兴")],
            [_item(8, 9, suggestion="气"), _item(0, 1, suggestion="你")],
            [_item(4, 6, suggestion="高兴", confidence=0.9)],
        ]

        merged = merge_errors(TEXT, groups)

        spans = [(m.start, m.end) for m in merged]
        self.assertEqual(spans, sorted(spans))
        for prev, nxt in zip(merged, merged[1:]):
            self.assertLessEqual(prev.end, nxt.start)
        for item in merged:
            self.assertEqual(TEXT[item.start : item.end], item.text)

    def test_merge_is_idempotent(self) -> None:
        groups = [[_item(4, 6), _item(3, 6), _item(7, 9)], [_item(7, 9, confidence=0.7)]]

        once = merge_errors(TEXT, groups)
        twice = merge_errors(TEXT, [once])

        self.assertEqual(once, twice)

    def test_parse_type_priority_overrides_defaults(self) -> None:
        priority = parse_type_priority("fluency:9, bogus, grammar:x")
        self.assertEqual(priority["fluency"], 9)
        self.assertEqual(priority["spelling"], 4)
        self.assertEqual(priority["grammar"], 2)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
