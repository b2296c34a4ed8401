from __future__ import annotations

import unittest

from proofread.lib.errors import ErrorItem
from proofread.lib.text import apply_error_items, apply_suggestion, split_sentences


class ApplyErrorItemsTests(unittest.TestCase):
    def test_single_replacement(self) -> None:
        result = apply_error_items("今天天气很好", [ErrorItem(start=0, end=2, text="今天", suggestion="今日")])

        self.assertEqual(result.patched_text, "今日天气很好")
        self.assertEqual((result.applied, result.skipped), (1, 0))

    def test_offsets_follow_length_changes(self) -> None:
        text = "我今天很高行，天汽也很好。"
        items = [
            ErrorItem(start=7, end=9, text="天汽", suggestion="天气"),
            ErrorItem(start=4, end=6, text="高行", suggestion="高兴了"),
            ErrorItem(start=6, end=7, text="，", suggestion=""),
        ]

        result = apply_error_items(text, items)

        self.assertEqual(result.patched_text, "我今天很高兴了天气也很好。")
        self.assertEqual(result.applied, 3)

    def test_overlapping_and_invalid_items_are_skipped(self) -> None:
        text = "我今天很高行。"
        items = [
            ErrorItem(start=3, end=6, text="很高行", suggestion="非常高兴"),
            ErrorItem(start=4, end=6, text="高行", suggestion="高兴"),
            ErrorItem(start=5, end=40, text="行。", suggestion="兴"),
            ErrorItem(start=0, end=2, text="我", suggestion="你"),
        ]

        result = apply_error_items(text, items)

        self.assertEqual(result.patched_text, "我今天非常高兴。")
        self.assertEqual((result.applied, result.skipped), (1, 3))

    def test_empty_items_return_original(self) -> None:
        result = apply_error_items("原文", [])
        self.assertEqual(result.patched_text, "原文")
        self.assertEqual((result.applied, result.skipped), (0, 0))


class ApplySuggestionTests(unittest.TestCase):
    def test_uses_span_when_it_matches(self) -> None:
        item = ErrorItem(start=4, end=6, text="高行", suggestion="高兴")
        self.assertEqual(apply_suggestion("我今天很高行，高行。", item), "我今天很高兴，高行。")

    def test_falls_back_to_first_occurrence(self) -> None:
        item = ErrorItem(start=0, end=2, text="高行", suggestion="高兴")
        self.assertEqual(apply_suggestion("我今天很高行，高行。", item), "我今天很高兴，高行。")

    def test_unknown_text_is_left_untouched(self) -> None:
        item = ErrorItem(start=0, end=2, text="不存在", suggestion="x")
        self.assertEqual(apply_suggestion("我今天很高行。", item), "我今天很高行。")


class SplitSentencesTests(unittest.TestCase):
    def test_splits_on_terminators_and_newlines(self) -> None:
        text = "你好！今天下雨了。\n明天呢"

        segments = split_sentences(text)

        self.assertEqual([(s.start, s.end) for s in segments], [(0, 3), (3, 9), (10, 13)])
        for segment in segments:
            self.assertEqual(text[segment.start : segment.end], segment.text)

    def test_closing_quotes_stay_with_sentence(self) -> None:
        segments = split_sentences("他说：“走吧。”然后走了")
        self.assertEqual(segments[0].text, "他说：“走吧。”")
        self.assertEqual(segments[1].text, "然后走了")

    def test_blank_text_has_no_segments(self) -> None:
        self.assertEqual(split_sentences("  \n\n "), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
