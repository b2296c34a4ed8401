from __future__ import annotations

import io
import json
import unittest
from contextlib import redirect_stdout
from unittest import mock

from proofread.cmd import cli
from proofread.lib.errors import ErrorItem
from proofread.lib.sse import CheckStatus


class CLITests(unittest.TestCase):
    def test_parse_args_defaults_to_check(self) -> None:
        args = cli.parse_args(["我今天很高行。", "--pipeline", "basic*2"])

        self.assertEqual(args.command, "check")
        self.assertEqual(args.text, "我今天很高行。")
        self.assertEqual(args.pipeline, "basic*2")

    def test_parse_args_remote(self) -> None:
        args = cli.parse_args(["remote", "文本", "--url", "http://x/api/check", "--max-retries", "5"])

        self.assertEqual(args.command, "remote")
        self.assertEqual(args.url, "http://x/api/check")
        self.assertEqual(args.max_retries, 5)

    def test_check_runs_pipeline_in_process(self) -> None:
        args = cli.parse_args(["check", "我们在见！！", "--pipeline", "rules", "--types", "spelling"])

        outcome = cli.run_cli(args)

        self.assertEqual([e["suggestion"] for e in outcome.errors], ["再见"])
        self.assertEqual(outcome.patched_text, "我们再见！！")

    def test_main_prints_json(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            cli.main(["check", "太好了！！", "--pipeline", "rules"])

        data = json.loads(buffer.getvalue())
        self.assertEqual(data["patchedText"], "太好了！")
        self.assertEqual(data["meta"]["pipeline"], [{"id": "rules", "runs": 1}])

    @mock.patch("proofread.cmd.cli.sse_check")
    def test_remote_uses_sse_client(self, mock_sse_check: mock.Mock) -> None:
        async def fake_sse_check(text, options, **kwargs):
            item = ErrorItem(id="a", start=4, end=6, text="高行", suggestion="高兴")
            kwargs["callbacks"].final([item], {"requestId": "rid"})
            return CheckStatus.SUCCESS

        mock_sse_check.side_effect = fake_sse_check
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            cli.main(["remote", "我今天很高行。", "--url", "http://x/api/check", "--pipeline", "basic*2"])

        data = json.loads(buffer.getvalue())
        self.assertEqual(data["status"], "success")
        self.assertEqual(data["errors"][0]["suggestion"], "高兴")
        _, kwargs = mock_sse_check.call_args
        self.assertEqual(kwargs["url"], "http://x/api/check")
        options = mock_sse_check.call_args.args[1]
        self.assertEqual(options, {"pipeline": [{"id": "basic", "runs": 2}]})

    @mock.patch("proofread.cmd.cli.sse_check")
    def test_remote_failure_exits_non_zero(self, mock_sse_check: mock.Mock) -> None:
        async def fake_sse_check(text, options, **kwargs):
            kwargs["callbacks"].error("连接中断，已重试 3 次仍失败。", "retries_exhausted", None)
            return CheckStatus.TERMINAL

        mock_sse_check.side_effect = fake_sse_check
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            cli.main(["remote", "文本"])

        self.assertEqual(ctx.exception.code, 1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
