from __future__ import annotations

import logging
import os
import unittest
from unittest import mock

from proofread.config.logging import RequestIdFilter, resolve_log_level
from proofread.config.settings import AppSettings
from proofread.lib.diagnostics import get_request_id, request_context
from proofread.lib.errors import MergeOptions
from proofread.lib.sse import ClientConfig


class AppSettingsTests(unittest.TestCase):
    @mock.patch.dict(os.environ, {}, clear=True)
    def test_defaults(self) -> None:
        settings = AppSettings.from_env()

        self.assertEqual([e.role_id for e in settings.pipeline], ["basic", "fluent", "reviewer"])
        self.assertEqual(settings.analyze_timeout_ms, 60_000)
        self.assertEqual(settings.api_rate_limit_per_min, 60)
        self.assertEqual(settings.disconnect_poll_s, 0.5)
        self.assertTrue(settings.review_fallback_on_empty)
        self.assertFalse(settings.llm.configured)
        self.assertEqual(settings.basic.min_confidence, 0.9)
        self.assertIsNone(settings.fluent.min_confidence)
        self.assertTrue(settings.merge.confidence_first)

    @mock.patch.dict(
        os.environ,
        {
            "WORKFLOW_PIPELINE": "basic*2,reviewer",
            "ANALYZE_TIMEOUT_MS": "1500",
            "API_RATE_LIMIT_PER_MIN": "not-a-number",
            "REVIEW_FALLBACK_ON_EMPTY": "off",
            "DISCONNECT_POLL_S": "0",
            "MERGE_CONFIDENCE_FIRST": "false",
            "MERGE_TYPE_PRIORITY": "fluency:10",
            "OPENAI_API_KEY": "sk-x",
            "OPENAI_MODEL": "qwen-plus",
            "BASIC_MIN_CONFIDENCE": "0.75",
            "FLUENT_MAX_OUTPUT": "5",
        },
        clear=True,
    )
    def test_environment_overrides(self) -> None:
        settings = AppSettings.from_env()

        self.assertEqual([(e.role_id, e.runs) for e in settings.pipeline], [("basic", 2), ("reviewer", 1)])
        self.assertEqual(settings.analyze_timeout_ms, 1500)
        self.assertEqual(settings.disconnect_poll_s, 0.01)
        self.assertEqual(settings.api_rate_limit_per_min, 60)
        self.assertFalse(settings.review_fallback_on_empty)
        self.assertEqual(settings.merge, MergeOptions(confidence_first=False, type_priority={
            "spelling": 4, "punctuation": 3, "grammar": 2, "fluency": 10,
        }))
        self.assertTrue(settings.llm.configured)
        self.assertEqual(settings.llm.model, "qwen-plus")
        self.assertEqual(settings.basic.min_confidence, 0.75)
        self.assertEqual(settings.fluent.max_output, 5)

    @mock.patch.dict(os.environ, {"CLIENT_MAX_RETRIES": "0", "CLIENT_SSE_IDLE_MS": "1000"}, clear=True)
    def test_client_config_from_env(self) -> None:
        config = ClientConfig.from_env()
        self.assertEqual(config.max_retries, 1)
        self.assertEqual(config.idle_ms, 1000)
        self.assertEqual(config.total_timeout_ms, 60_000)


class LoggingTests(unittest.TestCase):
    def test_resolve_log_level(self) -> None:
        self.assertEqual(resolve_log_level("warn"), logging.WARNING)
        self.assertEqual(resolve_log_level(None, "debug"), logging.DEBUG)
        self.assertEqual(resolve_log_level("15"), 15)
        self.assertEqual(resolve_log_level(None, default="ERROR"), logging.ERROR)
        self.assertEqual(resolve_log_level("nonsense"), logging.INFO)

    def test_request_id_filter_uses_context(self) -> None:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        with request_context("req-42"):
            RequestIdFilter().filter(record)

        self.assertEqual(record.request_id, "req-42")
        self.assertEqual(get_request_id(), "-")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
