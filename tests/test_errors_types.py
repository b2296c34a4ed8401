from __future__ import annotations

import unittest

from proofread.lib.errors import (
    ErrorItem,
    ErrorType,
    ItemValidationError,
    attach_sources,
    get_sources,
    items_from_dicts,
)


class ErrorItemTests(unittest.TestCase):
    def test_from_dict_accepts_description_alias(self) -> None:
        item = ErrorItem.from_dict(
            {"start": "4", "end": 6, "text": "高行", "suggestion": "高兴", "description": "错别字"}
        )

        self.assertEqual((item.start, item.end), (4, 6))
        self.assertEqual(item.explanation, "错别字")
        self.assertEqual(item.type, "spelling")
        self.assertTrue(item.id)

    def test_from_dict_rejects_broken_rows(self) -> None:
        with self.assertRaises(ItemValidationError):
            ErrorItem.from_dict({"start": "x", "end": 2, "text": "ab"})
        with self.assertRaises(ItemValidationError):
            ErrorItem.from_dict({"start": 0, "end": 2, "text": None})

    def test_items_from_dicts_skips_invalid_rows(self) -> None:
        rows = [{"start": 0, "end": 1, "text": "我"}, "noise", {"start": 0}]
        self.assertEqual(len(items_from_dicts(rows)), 1)
        self.assertEqual(items_from_dicts({"start": 0}), [])

    def test_to_dict_omits_empty_optional_fields(self) -> None:
        payload = ErrorItem(id="a", start=0, end=1, text="我", suggestion="你").to_dict()
        self.assertEqual(
            payload,
            {"id": "a", "start": 0, "end": 1, "text": "我", "suggestion": "你", "type": "spelling"},
        )

    def test_matches_checks_exact_slice(self) -> None:
        item = ErrorItem(start=1, end=3, text="今天")
        self.assertTrue(item.matches("我今天"))
        self.assertFalse(item.matches("我明天"))
        self.assertFalse(item.matches("我今"))

    def test_with_metadata_returns_updated_copy(self) -> None:
        item = ErrorItem(start=0, end=1, text="我", suggestion="你", metadata={"source": "llm"})

        updated = item.with_metadata(confidence=0.8)

        self.assertEqual(updated.metadata, {"source": "llm", "confidence": 0.8})
        self.assertEqual(item.metadata, {"source": "llm"})

    def test_error_type_parse(self) -> None:
        self.assertIs(ErrorType.parse(" Grammar "), ErrorType.GRAMMAR)
        self.assertIsNone(ErrorType.parse("style"))
        self.assertIsNone(ErrorType.parse(3))


class SourcesTests(unittest.TestCase):
    def test_attach_sources_merges_and_normalizes(self) -> None:
        item = ErrorItem(start=0, end=1, text="我", metadata={"source": "Basic"})

        tagged = attach_sources([item], "reviewer", "BASIC", "unknown")[0]

        self.assertEqual(tagged.metadata["sources"], ["basic", "reviewer"])
        self.assertEqual(get_sources(tagged), ["basic", "reviewer"])
        self.assertEqual(item.metadata, {"source": "Basic"})

    def test_items_without_known_sources_are_unchanged(self) -> None:
        item = ErrorItem(start=0, end=1, text="我")
        self.assertIs(attach_sources([item])[0], item)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
