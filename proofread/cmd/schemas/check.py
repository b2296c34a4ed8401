from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from proofread.lib.errors.types import ERROR_TYPES, ErrorItem
from proofread.lib.roles.types import BaseRole, PipelineEntry


class PipelineEntryPayload(BaseModel):
    """パイプラインの 1 要素。"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="ロール ID")
    runs: int = Field(1, ge=1, description="このロールを連続で実行する回数")
    model_name: str | None = Field(None, alias="modelName", description="ロール既定モデルの上書き")

    def to_entry(self) -> PipelineEntry:
        return PipelineEntry(role_id=self.id, runs=self.runs, model_name=self.model_name)


class CheckOptionsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pipeline: list[PipelineEntryPayload] | None = Field(
        None, description="未指定時は WORKFLOW_PIPELINE の設定を使う"
    )
    enabled_types: list[str] | None = Field(None, alias="enabledTypes", description="出力する誤り種別")

    @field_validator("enabled_types")
    @classmethod
    def _validate_types(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        unknown = [entry for entry in value if entry not in ERROR_TYPES]
        if unknown:
            raise ValueError(f"unknown error types: {unknown}")
        return list(dict.fromkeys(value))

    def entries(self) -> tuple[PipelineEntry, ...] | None:
        if not self.pipeline:
            return None
        return tuple(entry.to_entry() for entry in self.pipeline)


class CheckRequestPayload(BaseModel):
    text: str = Field(..., min_length=1, description="校正対象の本文")
    options: CheckOptionsPayload = Field(default_factory=CheckOptionsPayload)


class ErrorItemPayload(BaseModel):
    id: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    text: str
    suggestion: str
    type: str
    explanation: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_item(cls, item: ErrorItem) -> "ErrorItemPayload":
        return cls(**item.to_dict())


class CheckResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    errors: list[ErrorItemPayload]
    meta: dict[str, Any]
    patched_text: str = Field(..., alias="patchedText")


class SuggestionPayload(BaseModel):
    text: str | None = None
    suggestion: str | None = None
    start: int | None = None
    end: int | None = None


class ApplySuggestionRequestPayload(BaseModel):
    text: str | None = None
    error: SuggestionPayload | None = None


class ApplySuggestionResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_text: str = Field(..., alias="newText")


class RoleInfoPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str
    capabilities: list[str]
    streaming: bool
    default_model: str | None = Field(None, alias="defaultModel")

    @classmethod
    def from_role(cls, role: BaseRole) -> "RoleInfoPayload":
        return cls.model_validate(role.describe())


__all__ = [
    "ApplySuggestionRequestPayload",
    "ApplySuggestionResponsePayload",
    "CheckOptionsPayload",
    "CheckRequestPayload",
    "CheckResponsePayload",
    "ErrorItemPayload",
    "PipelineEntryPayload",
    "RoleInfoPayload",
    "SuggestionPayload",
]
