"""ロール定義・登録簿・パイプライン実行器。"""
from __future__ import annotations

from .builtin import BasicRole, FluentRole, ReviewerRole, RulesRole, register_builtin_roles
from .executor import PipelineExecutor, RoleProtocolError, run_pipeline
from .registry import RoleRegistry
from .types import (
    AnalysisInput,
    BaseRole,
    ExecutorHooks,
    FinalPayload,
    ModelSpec,
    PipelineEntry,
    PipelineEvent,
    Role,
    RoleChunk,
    RoleContext,
    RoleFinal,
    Stage,
    StreamingRole,
    parse_pipeline_spec,
)

__all__ = [
    "AnalysisInput",
    "BaseRole",
    "BasicRole",
    "ExecutorHooks",
    "FinalPayload",
    "FluentRole",
    "ModelSpec",
    "PipelineEntry",
    "PipelineEvent",
    "PipelineExecutor",
    "ReviewerRole",
    "Role",
    "RoleChunk",
    "RoleContext",
    "RoleFinal",
    "RoleProtocolError",
    "RoleRegistry",
    "RulesRole",
    "Stage",
    "StreamingRole",
    "parse_pipeline_spec",
    "register_builtin_roles",
    "run_pipeline",
]
