"""Загрузка переопределений грамматик детекторов из YAML.

Формат файла::

    detectors:
      task_id:
        pattern: '\\bTASK-\\d{4,}\\b'
        ignore_case: false

Переопределяется только регулярное выражение: плейсхолдер и позиция
детектора в pipeline остаются встроенными.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from errshape.exceptions import PatternConfigError
from errshape.normalization.patterns import PatternOverride
from errshape.normalization.pipeline import DEFAULT_PIPELINE, NormalizationPipeline

logger = logging.getLogger(__name__)


def load_pattern_overrides(path: str | Path) -> dict[str, PatternOverride]:
    """Прочитать YAML-файл с переопределениями.

    Raises:
        PatternConfigError: Файл не найден, не парсится или имеет неверную структуру.
    """
    overrides_path = Path(path)
    if not overrides_path.is_file():
        raise PatternConfigError(f"Файл переопределений не найден: {overrides_path}")

    try:
        raw = yaml.safe_load(overrides_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise PatternConfigError(f"Ошибка парсинга YAML {overrides_path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise PatternConfigError(
            f"Ожидался YAML-словарь в {overrides_path}, получен {type(raw).__name__}"
        )

    detectors = raw.get("detectors") or {}
    if not isinstance(detectors, dict):
        raise PatternConfigError(f"Ключ 'detectors' в {overrides_path} должен быть словарём")

    overrides: dict[str, PatternOverride] = {}
    for name, entry in detectors.items():
        overrides[str(name)] = _parse_entry(str(name), entry)

    logger.info(
        "Загружено %d переопределений детекторов из %s", len(overrides), overrides_path,
    )
    return overrides


def _parse_entry(name: str, entry: object) -> PatternOverride:
    # Короткая форма: task_id: '\bTASK-\d+\b'
    if isinstance(entry, str):
        return PatternOverride(pattern=entry)

    if not isinstance(entry, dict):
        raise PatternConfigError("ожидалась строка или словарь", detector=name)

    pattern = entry.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise PatternConfigError("отсутствует непустой 'pattern'", detector=name)

    ignore_case = entry.get("ignore_case")
    if ignore_case is not None and not isinstance(ignore_case, bool):
        raise PatternConfigError("'ignore_case' должен быть true/false", detector=name)

    return PatternOverride(pattern=pattern, ignore_case=ignore_case)


def build_pipeline(patterns_path: str | Path | None = None) -> NormalizationPipeline:
    """Вернуть pipeline: встроенный или с переопределениями из файла."""
    if not patterns_path:
        return DEFAULT_PIPELINE
    return NormalizationPipeline(overrides=load_pattern_overrides(patterns_path))
