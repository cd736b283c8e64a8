"""Общие фабрики и фикстуры для тестов errshape."""

from __future__ import annotations

from pathlib import Path

import pytest

from errshape.models.grouping import GroupingReport, MessageGroup, NormalizedMessage


def make_normalized_message(**overrides) -> NormalizedMessage:
    """Фабрика NormalizedMessage с разумными дефолтами."""
    defaults: dict = {
        "message": "timeout after 3000 ms",
        "normalized": "timeout after {NUMBER} ms",
        "fingerprint": "0" * 64,
    }
    defaults.update(overrides)
    return NormalizedMessage.model_validate(defaults)


def make_message_group(**overrides) -> MessageGroup:
    """Фабрика MessageGroup с разумными дефолтами."""
    defaults: dict = {
        "group_id": "abc1234567890def",
        "label": "connection refused to {IP}",
        "normalized": "connection refused to {IP}",
        "fingerprints": ["f" * 64],
        "member_indices": [0, 1],
        "member_count": 2,
        "example_message": "connection refused to 10.0.0.1:5432",
    }
    defaults.update(overrides)
    return MessageGroup.model_validate(defaults)


def make_grouping_report(**overrides) -> GroupingReport:
    """Фабрика GroupingReport с разумными дефолтами."""
    defaults: dict = {
        "pipeline_version": "v2",
        "total_messages": 2,
        "group_count": 1,
        "groups": [make_message_group()],
        "singleton_count": 0,
    }
    defaults.update(overrides)
    return GroupingReport.model_validate(defaults)


@pytest.fixture
def write_patterns(tmp_path):
    """Записать YAML-файл переопределений и вернуть путь к нему."""

    def _write(content: str, name: str = "patterns.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Изоляция от .env и ERRSHAPE_* переменных окружения разработчика."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "ERRSHAPE_LOG_LEVEL",
        "ERRSHAPE_PATTERNS_PATH",
        "ERRSHAPE_GROUPING_SIMILARITY_THRESHOLD",
        "ERRSHAPE_GROUPING_MAX_FEATURES",
        "ERRSHAPE_SERVER_HOST",
        "ERRSHAPE_SERVER_PORT",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path
