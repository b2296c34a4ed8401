from __future__ import annotations

import unittest

from proofread.lib.llm import extract_json_array, to_error_items
from proofread.lib.llm.output import find_first_top_level_array

ORIGINAL = "我今天很高行。"


class ExtractJsonArrayTests(unittest.TestCase):
    def test_reads_json_fence(self) -> None:
        content = '说明文字\n```json\n[{"text": "高行"}]\n```\n其他'
        self.assertEqual(extract_json_array(content), [{"text": "高行"}])

    def test_reads_bare_array_with_surrounding_prose(self) -> None:
        content = '结果如下：[{"text": "a]b"}, {"text": "c"}] 完毕 [1]'
        self.assertEqual(extract_json_array(content), [{"text": "a]b"}, {"text": "c"}])

    def test_tolerates_trailing_commas(self) -> None:
        self.assertEqual(extract_json_array('[{"a": 1,},]'), [{"a": 1}])

    def test_returns_empty_list_for_non_arrays(self) -> None:
        self.assertEqual(extract_json_array("没有问题"), [])
        self.assertEqual(extract_json_array('{"a": 1}'), [])
        self.assertEqual(extract_json_array(None), [])
        self.assertEqual(extract_json_array("[不是 json]"), [])

    def test_content_parts_are_joined(self) -> None:
        parts = [{"type": "text", "text": '[{"x":'}, {"type": "text", "text": " 1}]"}]
        self.assertEqual(extract_json_array(parts), [{"x": 1}])

    def test_find_first_top_level_array_handles_nesting(self) -> None:
        self.assertEqual(find_first_top_level_array('x [[1], "[", 2] y'), '[[1], "[", 2]')
        self.assertIsNone(find_first_top_level_array("no array"))


class ToErrorItemsTests(unittest.TestCase):
    def test_exact_span_is_kept(self) -> None:
        raw = [{"text": "高行", "start": 4, "end": 6, "suggestion": "高兴", "description": "错别字", "confidence": 0.95}]

        items = to_error_items(raw, enforced_type="spelling", original_text=ORIGINAL)

        self.assertEqual(len(items), 1)
        item = items[0]
        self.assertEqual((item.start, item.end, item.suggestion, item.type), (4, 6, "高兴", "spelling"))
        self.assertEqual(item.explanation, "错别字")
        self.assertEqual(item.metadata, {"locate": "exact", "confidence": 0.95})

    def test_wrong_span_is_relocated_by_unique_text(self) -> None:
        raw = [{"text": "高行", "start": 1, "end": 3, "suggestion": "高兴"}]

        items = to_error_items(raw, enforced_type="spelling", original_text=ORIGINAL)

        self.assertEqual((items[0].start, items[0].end), (4, 6))
        self.assertEqual(items[0].metadata["locate"], "fallback")

    def test_relocation_can_be_disabled_and_requires_unique_text(self) -> None:
        raw = [{"text": "高行", "start": 1, "end": 3, "suggestion": "高兴"}]
        self.assertEqual(
            to_error_items(raw, enforced_type="spelling", original_text=ORIGINAL, allow_locate_by_unique_text=False),
            [],
        )
        self.assertEqual(to_error_items(raw, enforced_type="spelling", original_text="高行高行"), [])

    def test_malformed_rows_are_dropped(self) -> None:
        raw = [
            {"text": "高行", "start": 6, "end": 4, "suggestion": "高兴"},
            {"text": "高行", "start": 4, "end": 6},
            "noise",
        ]
        self.assertEqual(to_error_items(raw, enforced_type="spelling", original_text=ORIGINAL), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
