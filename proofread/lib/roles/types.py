from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, ClassVar, Mapping, Sequence

from proofread.config.defaults import DEFAULT_PIPELINE_SPEC
from proofread.lib.cancel import CancelSignal
from proofread.lib.errors.types import ErrorItem

logger = logging.getLogger(__name__)

META_RUN_INDEX = "run_index"
META_MODEL_NAME = "model_name"
META_PREVIOUS_ITEMS = "previous_items"
META_ENABLED_TYPES = "enabled_types"


@dataclass(frozen=True)
class ModelSpec:
    name: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    timeout_ms: int | None = None
    max_retries: int | None = None


@dataclass(frozen=True)
class AnalysisInput:
    text: str


@dataclass(frozen=True)
class RoleContext:
    """1 回のロール実行に渡す文脈。ロール自身は状態を持たない。"""

    signal: CancelSignal | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def run_index(self) -> int:
        value = self.metadata.get(META_RUN_INDEX)
        return value if isinstance(value, int) else 0

    @property
    def model_name(self) -> str | None:
        value = self.metadata.get(META_MODEL_NAME)
        return value if isinstance(value, str) and value else None

    @property
    def previous_items(self) -> tuple[ErrorItem, ...]:
        value = self.metadata.get(META_PREVIOUS_ITEMS)
        if not isinstance(value, (list, tuple)):
            return ()
        return tuple(item for item in value if isinstance(item, ErrorItem))

    @property
    def enabled_types(self) -> frozenset[str] | None:
        value = self.metadata.get(META_ENABLED_TYPES)
        if not isinstance(value, (list, tuple, set, frozenset)) or not value:
            return None
        return frozenset(str(entry) for entry in value)

    def filter_enabled(self, items: Sequence[ErrorItem]) -> tuple[ErrorItem, ...]:
        enabled = self.enabled_types
        if enabled is None:
            return tuple(items)
        return tuple(item for item in items if item.type in enabled)


@dataclass(frozen=True)
class RoleChunk:
    items: tuple[ErrorItem, ...] = ()
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoleFinal:
    items: tuple[ErrorItem, ...] = ()
    raw_output: str | None = None
    error: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


class BaseRole(ABC):
    """ロールの共通属性。実装は ``Role`` か ``StreamingRole`` のどちらかを継承する。"""

    id: ClassVar[str]
    name: ClassVar[str]
    description: ClassVar[str] = ""
    capabilities: ClassVar[frozenset[str]] = frozenset()
    default_model: ClassVar[ModelSpec] = ModelSpec()
    streaming: ClassVar[bool] = False

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "capabilities": sorted(self.capabilities),
            "streaming": self.streaming,
            "defaultModel": self.default_model.name,
        }


class Role(BaseRole):
    """1 回の呼び出しで ``RoleFinal`` を返すロール。"""

    streaming: ClassVar[bool] = False

    @abstractmethod
    async def run(self, input: AnalysisInput, ctx: RoleContext) -> RoleFinal:
        raise NotImplementedError


class StreamingRole(BaseRole):
    """``RoleChunk`` を逐次返し、最後に ``RoleFinal`` を 1 つ返すロール。"""

    streaming: ClassVar[bool] = True

    @abstractmethod
    def stream(self, input: AnalysisInput, ctx: RoleContext) -> AsyncIterator[RoleChunk | RoleFinal]:
        raise NotImplementedError


@dataclass(frozen=True)
class PipelineEntry:
    role_id: str
    runs: int = 1
    model_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.role_id, "runs": self.runs}
        if self.model_name:
            payload["modelName"] = self.model_name
        return payload


_PIPELINE_TOKEN = re.compile(r"^([a-z][a-z0-9_-]*)(?:\*(\d+))?$")


def parse_pipeline_spec(raw: str | None, *, default: str = DEFAULT_PIPELINE_SPEC) -> tuple[PipelineEntry, ...]:
    """``"basic*2,reviewer,fluent*1"`` 形式をパイプライン定義に変換する。

    解釈できないトークンは読み飛ばし、結果が空なら ``default`` を使う。
    """

    entries: list[PipelineEntry] = []
    for token in (raw or "").split(","):
        token = token.strip().lower()
        if not token:
            continue
        match = _PIPELINE_TOKEN.match(token)
        if match is None:
            logger.warning("pipeline_token_invalid: %r", token)
            continue
        runs = int(match.group(2)) if match.group(2) else 1
        if runs < 1:
            logger.warning("pipeline_token_invalid_runs: %r", token)
            continue
        entries.append(PipelineEntry(role_id=match.group(1), runs=runs))
    if entries or raw == default:
        return tuple(entries)
    return parse_pipeline_spec(default, default=default)


class Stage(str, Enum):
    START = "start"
    CHUNK = "chunk"
    FINAL = "final"
    ERROR = "error"


@dataclass(frozen=True)
class FinalPayload:
    items: tuple[ErrorItem, ...]
    patched_text: str
    applied: int = 0
    skipped: int = 0
    raw_output: str | None = None
    error: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineEvent:
    """実行器が 1 ステージごとに返すイベント。"""

    role_id: str
    stage: Stage
    payload: RoleChunk | FinalPayload | None = None
    error: str | None = None
    run_index: int | None = None


@dataclass(frozen=True)
class ExecutorHooks:
    on_start: Callable[[PipelineEvent], None] | None = None
    on_chunk: Callable[[PipelineEvent], None] | None = None
    on_final: Callable[[PipelineEvent], None] | None = None
    on_error: Callable[[PipelineEvent], None] | None = None

    def dispatch(self, event: PipelineEvent) -> None:
        callback = {
            Stage.START: self.on_start,
            Stage.CHUNK: self.on_chunk,
            Stage.FINAL: self.on_final,
            Stage.ERROR: self.on_error,
        }[event.stage]
        if callback is not None:
            callback(event)


__all__ = [
    "AnalysisInput",
    "BaseRole",
    "ExecutorHooks",
    "FinalPayload",
    "META_ENABLED_TYPES",
    "META_MODEL_NAME",
    "META_PREVIOUS_ITEMS",
    "META_RUN_INDEX",
    "ModelSpec",
    "PipelineEntry",
    "PipelineEvent",
    "Role",
    "RoleChunk",
    "RoleContext",
    "RoleFinal",
    "Stage",
    "StreamingRole",
    "parse_pipeline_spec",
]
