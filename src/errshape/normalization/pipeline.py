"""Нормализация сообщений об ошибках — приведение к устойчивой «форме».

Два сообщения, различающиеся только волатильными значениями (request ID,
timestamp, порт), после нормализации дают одинаковую строку и попадают
в одну группу при дедупликации.

Этапы (строго последовательно, над одной строкой):
1. Short-circuit: сообщение целиком совпало с шумовым шаблоном → "".
2. Детекторы в порядке ``PIPELINE_ORDER`` (подстановки, контекстные
   правила, обрезка stack trace).
3. Схлопывание пробелов и trim.

Этапы 1-3 повторяются, пока строка меняется: плейсхолдер, вставленный
одним детектором, может открыть границу слова для другого.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Iterable, Mapping

from errshape.normalization.patterns import (
    PIPELINE_VERSION,
    Detector,
    PatternOverride,
    build_detectors,
)

logger = logging.getLogger(__name__)

# Синтетический путь без содержимого: /t123/foo/?/?/?.ext
_SHORT_CIRCUIT_RE = re.compile(r"/t\d+(?:/[^/\s?]+)*(?:/\?)+(?:\.[A-Za-z0-9]+)?")

_MULTI_SPACE_RE = re.compile(r"\s{2,}")

MAX_PASSES = 8
"""Верхняя граница повторных проходов детекторов до неподвижной точки."""


def collapse_whitespace(text: str) -> str:
    """Схлопнуть последовательности из 2+ пробельных символов и обрезать края."""
    return _MULTI_SPACE_RE.sub(" ", text).strip()


def is_short_circuit(message: str) -> bool:
    """Сообщение целиком (после trim) — шумовой синтетический путь."""
    return _SHORT_CIRCUIT_RE.fullmatch(message.strip()) is not None


class NormalizationPipeline:
    """Упорядоченный набор детекторов, применяемый к одному сообщению.

    Экземпляр неизменяем после создания: детекторы — кортеж скомпилированных
    паттернов, состояние вызова живёт только в локальной строке. Поэтому один
    pipeline безопасно разделять между потоками и запросами.
    """

    def __init__(
        self,
        detectors: Iterable[Detector] | None = None,
        *,
        overrides: Mapping[str, PatternOverride] | None = None,
    ) -> None:
        if detectors is not None and overrides:
            raise ValueError("detectors and overrides are mutually exclusive")
        self._detectors: tuple[Detector, ...] = (
            tuple(detectors) if detectors is not None else build_detectors(overrides)
        )
        self._customized = detectors is not None or bool(overrides)
        self._version_tag = self._compute_version_tag()

    @property
    def detectors(self) -> tuple[Detector, ...]:
        return self._detectors

    @property
    def order(self) -> tuple[str, ...]:
        """Имена детекторов в порядке применения."""
        return tuple(d.name for d in self._detectors)

    @property
    def version_tag(self) -> str:
        """Метка версии для fingerprint: ``v2`` или ``v2+<digest>`` при overrides."""
        return self._version_tag

    def normalize(self, message: str) -> str:
        """Вернуть нормализованную форму сообщения.

        Никогда не выбрасывает исключений для строкового входа; пустая строка
        возвращается без прогона этапов. Проход детекторов повторяется, пока
        строка не перестанет меняться (не более ``MAX_PASSES`` раз): результат
        нормализации — неподвижная точка, повторный вызов его не меняет.
        """
        if not message:
            return ""

        current = message
        for _ in range(MAX_PASSES):
            if is_short_circuit(current):
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("Short-circuit: %.80r", message)
                return ""
            updated = self._run_pass(current)
            if updated == current:
                return current
            current = updated

        logger.debug("No fixed point after %d passes: %.80r", MAX_PASSES, message)
        return current

    def trace(self, message: str) -> list[tuple[str, str]]:
        """Пошаговый прогон: пары (этап, строка после этапа).

        Для отладки порядка детекторов; этапы без изменений не включаются.
        """
        steps: list[tuple[str, str]] = []
        if not message:
            return steps

        current = message
        for _ in range(MAX_PASSES):
            if is_short_circuit(current):
                steps.append(("short_circuit", ""))
                return steps
            updated = self._run_pass(current, steps)
            if updated == current:
                break
            current = updated
        return steps

    def _run_pass(self, text: str, steps: list[tuple[str, str]] | None = None) -> str:
        current = text
        for detector in self._detectors:
            updated = detector.apply(current)
            if steps is not None and updated != current:
                steps.append((detector.name, updated))
            current = updated

        cleaned = collapse_whitespace(current)
        if steps is not None and cleaned != current:
            steps.append(("whitespace", cleaned))
        return cleaned

    def _compute_version_tag(self) -> str:
        tag = f"v{PIPELINE_VERSION}"
        if not self._customized:
            return tag
        digest = hashlib.sha256()
        for detector in self._detectors:
            digest.update(
                f"{detector.name}\x00{detector.pattern.pattern}\x00{detector.pattern.flags}\n".encode(
                    "utf-8"
                )
            )
        return f"{tag}+{digest.hexdigest()[:8]}"


DEFAULT_PIPELINE = NormalizationPipeline()
"""Pipeline со встроенным каталогом; собирается при импорте (fail fast)."""


def normalize_message(message: str) -> str:
    """Нормализовать сообщение встроенным pipeline.

    >>> normalize_message("timeout after 3000 ms to 10.0.0.12:5432")
    'timeout after {NUMBER} ms to {IP}'
    """
    return DEFAULT_PIPELINE.normalize(message)
