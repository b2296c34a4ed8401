from __future__ import annotations

import asyncio
import json
import unittest
from dataclasses import replace
from unittest import mock

from fastapi.testclient import TestClient

from proofread.cmd.http import create_app
from proofread.config.settings import AppSettings
from proofread.lib.cancel import sleep as cancel_sleep
from proofread.lib.errors import ErrorItem
from proofread.lib.roles import (
    AnalysisInput,
    PipelineEntry,
    Role,
    RoleContext,
    RoleFinal,
    RoleRegistry,
    RulesRole,
)
from proofread.lib.sse import SSEDecoder, parse_event_data

TEXT = "我今天很高行。"


class SpellingRole(Role):
    id = "basic"
    name = "基础错误检测"
    capabilities = frozenset({"spelling"})

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        start = input.text.find("高行")
        if start < 0:
            return RoleFinal()
        item = ErrorItem(start=start, end=start + 2, text="高行", suggestion="高兴", explanation="错别字")
        return RoleFinal(items=ctx.filter_enabled((item,)))


class SlowRole(Role):
    id = "slow"
    name = "slow"

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        await asyncio.sleep(5)
        return RoleFinal()


def _app(**settings):
    registry = RoleRegistry()
    registry.register(SpellingRole())
    registry.register(RulesRole())
    registry.register(SlowRole())
    base = AppSettings(pipeline=(PipelineEntry("basic"),), api_rate_limit_per_min=0)
    return create_app(settings=replace(base, **settings), registry=registry)


def _sse_events(body: str) -> list[dict]:
    decoder = SSEDecoder()
    return [event for event in (parse_event_data(data) for data in decoder.feed(body)) if event is not None]


class CheckEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(_app())

    def test_healthz(self) -> None:
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_roles_endpoint_lists_registered_roles(self) -> None:
        response = self.client.get("/api/roles")

        self.assertEqual(response.status_code, 200)
        roles = {role["id"]: role for role in response.json()}
        self.assertEqual(set(roles), {"basic", "rules", "slow"})
        self.assertTrue(roles["rules"]["streaming"])
        self.assertIn("defaultModel", roles["basic"])

    def test_json_mode_returns_final_result(self) -> None:
        response = self.client.post("/api/check", json={"text": TEXT}, headers={"X-Request-Id": "req-1"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["x-request-id"], "req-1")
        data = response.json()
        self.assertEqual(data["patchedText"], "我今天很高兴。")
        self.assertEqual(len(data["errors"]), 1)
        error = data["errors"][0]
        self.assertEqual((error["start"], error["end"], error["suggestion"]), (4, 6, "高兴"))
        self.assertEqual(error["metadata"]["sources"], ["basic"])
        self.assertEqual(data["meta"]["requestId"], "req-1")
        self.assertEqual(data["meta"]["pipeline"], [{"id": "basic", "runs": 1}])

    def test_json_mode_honours_pipeline_and_types(self) -> None:
        response = self.client.post(
            "/api/check",
            json={
                "text": "太好了！！我们在见。",
                "options": {"pipeline": [{"id": "rules"}], "enabledTypes": ["punctuation"]},
            },
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([e["type"] for e in data["errors"]], ["punctuation"])
        self.assertEqual(data["patchedText"], "太好了！我们在见。")
        self.assertEqual(data["meta"]["enabledTypes"], ["punctuation"])

    def test_sse_mode_streams_chunks_then_final(self) -> None:
        response = self.client.post("/api/check", json={"text": TEXT}, headers={"Accept": "text/event-stream"})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(response.headers["cache-control"], "no-cache, no-transform")
        self.assertEqual(response.headers["x-accel-buffering"], "no")
        self.assertTrue(response.text.startswith(":ready\n\n"))
        events = _sse_events(response.text)
        self.assertEqual([e["type"] for e in events], ["chunk", "final"])
        self.assertEqual(events[0]["agent"], "basic")
        self.assertEqual(events[-1]["patchedText"], "我今天很高兴。")
        self.assertEqual(events[-1]["meta"]["requestId"], response.headers["x-request-id"])

    def test_sse_mode_reports_missing_role_as_warning(self) -> None:
        response = self.client.post(
            "/api/check",
            json={"text": TEXT, "options": {"pipeline": [{"id": "ghost"}, {"id": "basic", "runs": 2}]}},
            headers={"Accept": "text/event-stream"},
        )

        events = _sse_events(response.text)
        self.assertEqual([e["type"] for e in events], ["warning", "chunk", "chunk", "final"])
        self.assertEqual(events[0]["message"], "role_not_found: ghost")
        self.assertEqual([e["runIndex"] for e in events[1:3]], [0, 1])

    def test_invalid_payloads_are_rejected(self) -> None:
        self.assertEqual(self.client.post("/api/check", json={"text": ""}).status_code, 422)
        self.assertEqual(self.client.post("/api/check", json={}).status_code, 422)
        response = self.client.post("/api/check", json={"text": TEXT, "options": {"enabledTypes": ["style"]}})
        self.assertEqual(response.status_code, 422)
        response = self.client.post("/api/check", json={"text": TEXT, "options": {"pipeline": [{"id": "basic", "runs": 0}]}})
        self.assertEqual(response.status_code, 422)

    def test_json_mode_timeout_returns_504(self) -> None:
        client = TestClient(_app(analyze_timeout_ms=20))

        response = client.post("/api/check", json={"text": TEXT, "options": {"pipeline": [{"id": "slow"}]}})

        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.json()["code"], "timeout")

    def test_sse_mode_timeout_ends_with_error_event(self) -> None:
        client = TestClient(_app(analyze_timeout_ms=20))

        response = client.post(
            "/api/check",
            json={"text": TEXT, "options": {"pipeline": [{"id": "slow"}]}},
            headers={"Accept": "text/event-stream", "X-Request-Id": "req-t"},
        )

        events = _sse_events(response.text)
        self.assertEqual(events[-1]["type"], "error")
        self.assertEqual(events[-1]["code"], "timeout")
        self.assertEqual(events[-1]["requestId"], "req-t")

    @mock.patch("proofread.lib.check.service.CheckService.check", side_effect=RuntimeError("boom"))
    def test_json_mode_internal_error_returns_500(self, _: mock.Mock) -> None:
        response = self.client.post("/api/check", json={"text": TEXT})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "处理出错，请稍后重试。")

    def test_rate_limit_returns_429(self) -> None:
        client = TestClient(_app(api_rate_limit_per_min=2))

        statuses = [client.post("/api/check", json={"text": TEXT}).status_code for _ in range(3)]

        self.assertEqual(statuses, [200, 200, 429])
        limited = client.post("/api/check", json={"text": TEXT})
        self.assertEqual(limited.json(), {"error": "请求过于频繁，请稍后再试。"})
        self.assertEqual(limited.headers["retry-after"], "1")


class WatchfulRole(Role):
    """中止シグナルを待ちながら長く走るロール。"""

    id = "watchful"
    name = "watchful"

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.finished = False

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        self.started.set()
        await cancel_sleep(2, ctx.signal)
        self.finished = True
        return RoleFinal()


class ClientDisconnectTests(unittest.IsolatedAsyncioTestCase):
    async def test_json_mode_stops_roles_when_client_disconnects(self) -> None:
        role = WatchfulRole()
        registry = RoleRegistry()
        registry.register(role)
        settings = AppSettings(
            pipeline=(PipelineEntry("watchful"),),
            api_rate_limit_per_min=0,
            analyze_timeout_ms=0,
            disconnect_poll_s=0.01,
        )
        app = create_app(settings=settings, registry=registry)

        body = json.dumps({"text": TEXT}).encode("utf-8")
        pending = [{"type": "http.request", "body": body, "more_body": False}]
        sent: list[dict] = []

        async def receive() -> dict:
            if pending:
                return pending.pop(0)
            if role.started.is_set():
                return {"type": "http.disconnect"}
            await role.started.wait()
            return {"type": "http.disconnect"}

        async def send(message: dict) -> None:
            sent.append(message)

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": "/api/check",
            "raw_path": b"/api/check",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"testserver"),
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("ascii")),
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }

        await asyncio.wait_for(app(scope, receive, send), timeout=1.5)

        self.assertTrue(role.started.is_set())
        self.assertFalse(role.finished)
        start = next(message for message in sent if message["type"] == "http.response.start")
        self.assertEqual(start["status"], 504)
        payload = json.loads(b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body"))
        self.assertEqual(payload["code"], "aborted")


class ApplySuggestionEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(_app())

    def test_applies_suggestion(self) -> None:
        response = self.client.post(
            "/api/apply-suggestion",
            json={"text": TEXT, "error": {"text": "高行", "suggestion": "高兴", "start": 4, "end": 6}},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"newText": "我今天很高兴。"})

    def test_falls_back_to_text_search_without_span(self) -> None:
        response = self.client.post(
            "/api/apply-suggestion",
            json={"text": TEXT, "error": {"text": "高行", "suggestion": "高兴"}},
        )

        self.assertEqual(response.json(), {"newText": "我今天很高兴。"})

    def test_missing_fields_return_400(self) -> None:
        for payload in ({}, {"text": TEXT}, {"text": TEXT, "error": {"text": "高行"}}):
            response = self.client.post("/api/apply-suggestion", json=payload)
            self.assertEqual(response.status_code, 400, payload)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
