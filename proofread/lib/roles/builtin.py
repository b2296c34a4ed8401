from __future__ import annotations

import logging
from dataclasses import replace
from typing import AsyncIterator

from proofread.lib.agents import AgentFilterConfig, BasicErrorAgent, FluentAgent, ReviewerAgent
from proofread.lib.errors.merge import merge_errors
from proofread.lib.errors.types import ErrorItem
from proofread.lib.llm import ChatModel
from proofread.lib.rules import RuleEngine, default_rule_engine
from proofread.lib.text.patch import apply_error_items
from proofread.lib.text.segments import split_sentences

from .registry import RoleRegistry
from .types import AnalysisInput, ModelSpec, Role, RoleChunk, RoleContext, RoleFinal, StreamingRole

logger = logging.getLogger(__name__)


class BasicRole(Role):
    id = "basic"
    name = "基础错误检测"
    description = "检测拼写、标点和基础语法错误"
    capabilities = frozenset({"spelling", "punctuation", "grammar"})

    def __init__(self, agent: BasicErrorAgent) -> None:
        self.agent = agent

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        previous = ctx.previous_items
        patched_text = ""
        if previous:
            patched_text = apply_error_items(input.text, merge_errors(input.text, [previous])).patched_text
        result = await self.agent.call(
            input.text,
            previous_items=previous,
            patched_text=patched_text,
            run_index=ctx.run_index,
            model_name=ctx.model_name,
            signal=ctx.signal,
        )
        return RoleFinal(items=ctx.filter_enabled(result.items), raw_output=result.raw_output, error=result.error)


class FluentRole(Role):
    id = "fluent"
    name = "语义通顺检测"
    description = "检测不改变原意即可提升可读性的表达"
    capabilities = frozenset({"fluency"})

    def __init__(self, agent: FluentAgent) -> None:
        self.agent = agent

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        result = await self.agent.call(input.text, model_name=ctx.model_name, signal=ctx.signal)
        return RoleFinal(items=ctx.filter_enabled(result.items), raw_output=result.raw_output, error=result.error)


class ReviewerRole(Role):
    id = "reviewer"
    name = "结果审阅"
    description = "审阅前序角色的候选并给出采纳、拒绝或修改"
    capabilities = frozenset({"review"})

    def __init__(self, agent: ReviewerAgent) -> None:
        self.agent = agent

    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        merged = merge_errors(input.text, [ctx.previous_items])
        result = await self.agent.call(input.text, merged, model_name=ctx.model_name, signal=ctx.signal)
        return RoleFinal(
            items=result.items,
            raw_output=result.raw_output,
            error=result.error,
            extra={"decisions": list(result.decisions), "candidates": len(merged)},
        )


class RulesRole(StreamingRole):
    """規則による検出を文ごとに逐次返すロール。"""

    id = "rules"
    name = "规则检测"
    description = "基于规则词典检测常见错误，按句子逐步输出"
    capabilities = frozenset({"spelling", "punctuation"})
    default_model = ModelSpec(name=None)

    def __init__(self, engine: RuleEngine | None = None) -> None:
        self.engine = engine or default_rule_engine()

    async def stream(self, input: AnalysisInput, ctx: RoleContext) -> AsyncIterator[RoleChunk | RoleFinal]:
        enabled = sorted(ctx.enabled_types or ()) or None
        found: list[ErrorItem] = []
        for segment in split_sentences(input.text):
            if ctx.signal is not None:
                ctx.signal.raise_if_cancelled()
            shifted = [
                replace(
                    item,
                    id=f"rule_{item.metadata.get('ruleId')}_{item.start + segment.start}_{item.end + segment.start}",
                    start=item.start + segment.start,
                    end=item.end + segment.start,
                )
                for item in self.engine.detect(segment.text, enabled)
            ]
            if shifted:
                found.extend(shifted)
                yield RoleChunk(items=tuple(shifted), data={"segment": [segment.start, segment.end]})
        yield RoleFinal(items=tuple(found))


def register_builtin_roles(
    registry: RoleRegistry,
    model: ChatModel,
    *,
    basic_config: AgentFilterConfig | None = None,
    fluent_config: AgentFilterConfig | None = None,
    rule_engine: RuleEngine | None = None,
) -> RoleRegistry:
    """組み込みロールを未登録のものだけ登録する (何度呼んでも同じ結果)。"""

    basic = basic_config or AgentFilterConfig.from_env("BASIC", min_confidence=0.9)
    fluent = fluent_config or AgentFilterConfig.from_env("FLUENT")
    registry.register(BasicRole(BasicErrorAgent(model, basic)))
    registry.register(FluentRole(FluentAgent(model, fluent)))
    registry.register(ReviewerRole(ReviewerAgent(model)))
    registry.register(RulesRole(rule_engine))
    logger.debug("builtin_roles_registered: %s", [role.id for role in registry])
    return registry


__all__ = ["BasicRole", "FluentRole", "ReviewerRole", "RulesRole", "register_builtin_roles"]
