"""Pydantic-модели результатов нормализации и группировки сообщений."""

from __future__ import annotations

from pydantic import BaseModel, Field


class NormalizedMessage(BaseModel):
    """Сообщение и его нормализованная форма."""

    message: str
    normalized: str
    fingerprint: str


class MessageGroup(BaseModel):
    """Группа сообщений одной «формы» (или близких форм при слиянии)."""

    group_id: str
    label: str
    normalized: str
    fingerprints: list[str] = Field(default_factory=list)
    member_indices: list[int] = Field(default_factory=list)
    member_count: int = 0
    example_message: str | None = None


class GroupingReport(BaseModel):
    """Результат группировки пачки сообщений."""

    pipeline_version: str
    total_messages: int
    group_count: int
    groups: list[MessageGroup] = Field(default_factory=list)
    singleton_count: int = 0
